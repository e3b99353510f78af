"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from mediaindex.config import (
    ConfigError,
    ConfigManager,
    MediaIndexConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path.exists()
    assert path == tmp_path / ".mediaindex" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "mediaindex configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, MediaIndexConfig)
    assert config.scan.include_videos is True
    assert config.scan.include_other is False


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"scan": {"roots": ["/media/a"], "workers": 2}, "events": {"queue_size": 50}})

    env = {"MEDIAINDEX__SCAN__WORKERS": "6", "MEDIAINDEX__EVENTS__QUEUE_SIZE": "75"}
    cli = {"scan.workers": 3}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.scan.roots == ["/media/a"]
    assert config.events.queue_size == 75
    # CLI overrides take precedence over environment
    assert config.scan.workers == 3


def test_environment_booleans_are_parsed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    config = manager.load(env_overrides={"MEDIAINDEX__SCAN__INCLUDE_OTHER": "true"})

    assert config.scan.include_other is True


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save({"scan": {"include_audio": True}})

    with pytest.raises(ConfigError):
        manager.load(include_env=False)


def test_flatten_for_env_renders_defaults() -> None:
    flat = flatten_for_env(MediaIndexConfig())

    assert flat["MEDIAINDEX__SCAN__INCLUDE_VIDEOS"] == "true"
    assert flat["MEDIAINDEX__SCAN__CHUNK_SIZE_KB"] == "1024"
    assert flat["MEDIAINDEX__STORAGE__DATABASE_PATH"] == "~/.mediaindex/index.db"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=MediaIndexConfig(),
            file_overrides={"scan": {"workers": -1}},
        )
