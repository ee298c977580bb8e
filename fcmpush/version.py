"""Version information for fcmpush."""

from importlib import metadata

_VERSION: str | None = None


def get_version() -> str:
    """
    Get the installed package version.

    Returns:
        Version string (e.g., "0.3.0"), or "unknown" when not installed
    """
    global _VERSION

    if _VERSION is not None:
        return _VERSION

    try:
        _VERSION = metadata.version("fcmpush")
    except metadata.PackageNotFoundError:
        return "unknown"
    return _VERSION
