"""Command line interface for mediaindex."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from mediaindex.config import ConfigError, ConfigManager, MediaIndexConfig, resolve_with_precedence
from mediaindex.environment import UserEnvironment
from mediaindex.events import EventChannel
from mediaindex.logs import configure_logging
from mediaindex.orchestrator import ScanOrchestrator, ScanState, ScanSummary
from mediaindex.reports import ReportService, format_duration, format_size
from mediaindex.scanning import CategoryFilter, ScanFailedError
from mediaindex.store import SqliteIndexStore, StoreError
from mediaindex.watch import WatchBatchResult, WatchService

console = Console()

_MEDIUM_FILE_BYTES = 500 * 1024 * 1024
_LARGE_FILE_BYTES = 2 * 1024 * 1024 * 1024


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, target: str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {target}: {parts}.[/green]"


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


def _load_config(cli_overrides: Optional[dict[str, Any]] = None) -> MediaIndexConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    return manager.load(cli_overrides=cli_overrides)


def _resolve_output_modes(
    ctx: click.Context,
    config: MediaIndexConfig,
    *,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
) -> tuple[bool, bool]:
    """Combine CLI flags with configured defaults into ``(quiet, summary_only)``.

    Raises:
        click.ClickException: If the requested modes conflict.
    """

    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _size_style(size_hint: int) -> str | None:
    if size_hint <= 0:
        return None
    if size_hint < _MEDIUM_FILE_BYTES:
        return "green"
    if size_hint < _LARGE_FILE_BYTES:
        return "yellow"
    return "red"


class ConsoleLogObserver:
    """Print scan progress events, colored by file size."""

    def __init__(self, *, quiet: bool, summary_only: bool) -> None:
        self.quiet = quiet
        self.summary_only = summary_only

    def on_log_message(self, message: str, size_hint: int) -> None:
        _emit_message(
            Text(message, style=_size_style(size_hint) or ""),
            mode="detail",
            quiet=self.quiet,
            summary_only=self.summary_only,
        )


def _scan_metrics(summary: ScanSummary) -> dict[str, Any]:
    return {
        "files": summary.records,
        "cached": summary.cache_hits,
        "hashed": summary.cache_misses,
        "unreadable": summary.hash_errors,
        "duplicates": summary.duplicates_marked,
        "errors": len(summary.errors),
    }


def _emit_scan_summary(summary: ScanSummary, *, quiet: bool, summary_only: bool) -> None:
    for root in summary.skipped_roots:
        _emit_message(
            f"[yellow]Skipped missing directory: {root}[/yellow]",
            mode="warning",
            quiet=quiet,
            summary_only=summary_only,
        )
    if summary.errors:
        _emit_message(
            "[red]Errors encountered:[/red]", mode="error", quiet=quiet, summary_only=summary_only
        )
        for error in summary.errors:
            _emit_message(
                Text(f"  - {error}", style="red"),
                mode="error",
                quiet=quiet,
                summary_only=summary_only,
            )
    if summary.state is ScanState.CANCELLED:
        _emit_message(
            "[yellow]Scan cancelled; the previous index was kept.[/yellow]",
            mode="warning",
            quiet=quiet,
            summary_only=summary_only,
        )
        return
    target = ", ".join(str(root) for root in summary.roots) or "no roots"
    _emit_message(
        _format_summary_line("Scan", target, _scan_metrics(summary)),
        mode="summary",
        quiet=quiet,
        summary_only=summary_only,
    )


def _emit_watch_batch(
    batch: WatchBatchResult,
    *,
    json_output: bool,
    quiet: bool,
    summary_only: bool,
) -> None:
    if json_output:
        console.print_json(
            data={
                "batch_id": batch.batch_id,
                "triggered_paths": [str(path) for path in batch.triggered_paths],
                "scan": batch.summary.to_payload(),
            }
        )
        return
    _emit_message(
        f"[cyan]Batch {batch.batch_id}: {len(batch.triggered_paths)} changed path(s).[/cyan]",
        mode="detail",
        quiet=quiet,
        summary_only=summary_only,
    )
    _emit_scan_summary(batch.summary, quiet=quiet, summary_only=summary_only)


def _category_overrides(
    videos: Optional[bool], images: Optional[bool], other: Optional[bool]
) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if videos is not None:
        overrides["scan.include_videos"] = videos
    if images is not None:
        overrides["scan.include_images"] = images
    if other is not None:
        overrides["scan.include_other"] = other
    return overrides


def _open_reports(config: MediaIndexConfig) -> ReportService:
    store = SqliteIndexStore(Path(config.storage.database_path).expanduser())
    return ReportService(store, UserEnvironment())


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="mediaindex")
def cli() -> None:
    """Index media files, reuse unchanged fingerprints and find duplicates."""


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(file_okay=False, path_type=str))
@click.option("--videos/--no-videos", default=None, help="Index video files.")
@click.option("--images/--no-images", default=None, help="Index image files.")
@click.option("--other/--no-other", default=None, help="Index all other files.")
@click.option("--workers", type=click.IntRange(min=0), help="Fingerprint worker threads.")
@click.option("--db", "database", type=click.Path(dir_okay=False, path_type=str), help="Index database path.")
@click.option("--json", "json_output", is_flag=True, help="Emit the scan summary as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def scan(
    ctx: click.Context,
    roots: tuple[str, ...],
    videos: Optional[bool],
    images: Optional[bool],
    other: Optional[bool],
    workers: Optional[int],
    database: Optional[str],
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Scan ROOTS (or the configured/default folders) and refresh the index.

    Unchanged files reuse their stored fingerprint. Duplicate flags are
    recomputed once the new snapshot is saved. Press Ctrl+C to cancel; the
    previous index is kept.
    """

    overrides = _category_overrides(videos, images, other)
    if workers is not None:
        overrides["scan.workers"] = workers
    if database:
        overrides["storage.database_path"] = database

    try:
        config = _load_config(overrides)
        configure_logging(config.logging)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        return

    quiet_enabled, summary_only = _resolve_output_modes(
        ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
    )
    if not CategoryFilter.from_options(config.scan).any_enabled:
        raise click.ClickException("Enable at least one of --videos, --images or --other.")

    with EventChannel(config.events.queue_size) as channel:
        if not json_output:
            channel.subscribe(ConsoleLogObserver(quiet=quiet_enabled, summary_only=summary_only))
        orchestrator = ScanOrchestrator.from_config(config, events=channel)

        try:
            future = orchestrator.start(list(roots) or None)
            try:
                summary = future.result()
            except KeyboardInterrupt:
                orchestrator.cancel()
                summary = future.result()
        except ScanFailedError as exc:
            _handle_cli_error(
                str(exc),
                code="scan_failed",
                json_output=json_output,
                details={"state": exc.state},
                original=exc,
            )
            return
        finally:
            orchestrator.shutdown()

    if json_output:
        console.print_json(data={"scan": summary.to_payload()})
        return
    _emit_scan_summary(summary, quiet=quiet_enabled, summary_only=summary_only)


@cli.command()
@click.option("--db", "database", type=click.Path(dir_okay=False, path_type=str), help="Index database path.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Number of locations to list (defaults to configuration).",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the report as JSON.")
def report(database: Optional[str], limit: Optional[int], json_output: bool) -> None:
    """Show storage totals, volume usage and the per-location breakdown."""

    overrides = {"storage.database_path": database} if database else None
    try:
        config = _load_config(overrides)
        configure_logging(config.logging)
        service = _open_reports(config)
        storage = service.storage_report()
        metrics = service.storage_metrics()
        locations = service.location_breakdown()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        return
    except StoreError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    effective_limit = limit if limit is not None else config.cli.breakdown_limit
    locations = locations[:effective_limit]

    if json_output:
        console.print_json(
            data={
                "storage": storage.model_dump(mode="json"),
                "metrics": metrics.model_dump(mode="json"),
                "locations": [item.model_dump(mode="json") for item in locations],
            }
        )
        return

    summary_table = Table(title="Index", show_header=False)
    summary_table.add_column("Metric", style="bold")
    summary_table.add_column("Value")
    summary_table.add_row("Files", str(storage.total_count))
    summary_table.add_row("Total size", format_size(storage.total_size))
    summary_table.add_row("Duplicate size", format_size(storage.duplicate_size))
    console.print(summary_table)

    if metrics.volumes:
        volume_table = Table(title="Volumes")
        volume_table.add_column("Root")
        volume_table.add_column("Total", justify="right")
        volume_table.add_column("Free", justify="right")
        for volume in metrics.volumes:
            volume_table.add_row(volume.root, format_size(volume.total), format_size(volume.free))
        volume_table.add_row(
            "Other used", format_size(metrics.other_used_space), "", style="dim"
        )
        console.print(volume_table)

    if locations:
        location_table = Table(title="Locations")
        location_table.add_column("Location")
        location_table.add_column("Size", justify="right")
        for item in locations:
            location_table.add_row(item.location, item.display_size)
        console.print(location_table)


@cli.command()
@click.option("--db", "database", type=click.Path(dir_okay=False, path_type=str), help="Index database path.")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum groups to list.")
@click.option("--json", "json_output", is_flag=True, help="Emit duplicate groups as JSON.")
def duplicates(database: Optional[str], limit: Optional[int], json_output: bool) -> None:
    """List files whose content duplicates another indexed file."""

    overrides = {"storage.database_path": database} if database else None
    try:
        config = _load_config(overrides)
        configure_logging(config.logging)
        groups = _open_reports(config).duplicate_groups(limit)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        return
    except StoreError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data={
                "count": len(groups),
                "groups": [group.model_dump(mode="json") for group in groups],
            }
        )
        return

    if not groups:
        console.print("[green]No duplicates found.[/green]")
        return

    table = Table(title="Duplicates")
    table.add_column("Digest")
    table.add_column("Size", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Kept")
    table.add_column("Duplicates")
    for group in groups:
        table.add_row(
            group.digest[:12],
            format_size(group.size),
            format_duration(group.duration),
            group.survivor,
            "\n".join(group.duplicates),
        )
    console.print(table)
    reclaimable = sum(group.reclaimable_size for group in groups)
    console.print(f"[green]{format_size(reclaimable)} reclaimable.[/green]")


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--debounce", type=float, help="Override debounce interval in seconds.")
@click.option("--once", is_flag=True, help="Scan once and exit.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing each rescan.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def watch(
    ctx: click.Context,
    roots: tuple[str, ...],
    debounce: Optional[float],
    once: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Monitor ROOTS and rescan after changes settle."""

    try:
        config = _load_config()
        configure_logging(config.logging)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        return

    quiet_enabled, summary_only = _resolve_output_modes(
        ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
    )
    if debounce is not None and debounce <= 0:
        raise click.ClickException("--debounce must be greater than zero.")

    channel = EventChannel(config.events.queue_size)
    if not json_output:
        channel.subscribe(ConsoleLogObserver(quiet=quiet_enabled, summary_only=summary_only))
    orchestrator = ScanOrchestrator.from_config(config, events=channel)

    ignored = [Path(config.storage.database_path)]
    if config.logging.file:
        ignored.append(Path(config.logging.file))
    service = WatchService(
        orchestrator,
        settings=config.watch,
        roots=[Path(root) for root in roots] or None,
        ignored_paths=ignored,
        debounce_override=debounce,
    )

    def emit(batch: WatchBatchResult) -> None:
        _emit_watch_batch(
            batch, json_output=json_output, quiet=quiet_enabled, summary_only=summary_only
        )

    try:
        if once:
            emit(service.process_once())
            return

        if not json_output:
            monitored = ", ".join(str(path) for path in service.roots)
            _emit_message(
                f"[cyan]Watching {monitored}. Press Ctrl+C to stop.[/cyan]",
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        try:
            service.watch(emit)
        except KeyboardInterrupt:
            service.stop()
            if not json_output:
                _emit_message(
                    "[yellow]Watch stopped by user request.[/yellow]",
                    mode="summary",
                    quiet=quiet_enabled,
                    summary_only=summary_only,
                )
    except ScanFailedError as exc:
        _handle_cli_error(
            str(exc),
            code="scan_failed",
            json_output=json_output,
            details={"state": exc.state},
            original=exc,
        )
    except RuntimeError as exc:
        _handle_cli_error(
            str(exc), code="watch_runtime_error", json_output=json_output, original=exc
        )
    finally:
        channel.close()


@cli.group()
def config() -> None:
    """Manage mediaindex configuration values."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        config = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(config.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'scan.workers'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    file_data = manager.load_file_overrides()

    try:
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=MediaIndexConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )

    if not diff:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session."""
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=MediaIndexConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
