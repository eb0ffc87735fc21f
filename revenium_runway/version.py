"""Version lookup for the middlewareSource usage field."""

from __future__ import annotations

from functools import lru_cache
from importlib import metadata

from revenium_runway import __version__

DISTRIBUTION_NAME = "revenium-runway"
MIDDLEWARE_NAME = "revenium-middleware-runway-python"


def get_version() -> str:
    """Installed distribution version, or the package __version__ when not installed."""
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return __version__


@lru_cache(maxsize=1)
def get_middleware_source() -> str:
    return f"{MIDDLEWARE_NAME}@{get_version()}"
