"""Incremental file indexer with content fingerprinting and duplicate detection."""

from importlib import metadata as _metadata

__all__ = ["__version__", "HASH_ERROR"]

HASH_ERROR = "HASH_ERROR"


def __getattr__(name: str):
    if name == "__version__":
        try:
            return _metadata.version("mediaindex")
        except _metadata.PackageNotFoundError:
            return "0.0.0+unknown"
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + ["__version__"])
