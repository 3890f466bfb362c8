"""Version of the installed distribution, used in the HTTP ``User-Agent``."""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import metadata

DISTRIBUTION_NAME = "numscript-server-manager"
_FALLBACK_VERSION = "0.0.0-dev"
_VERSION_ENV = "NUMSCRIPT_APP_VERSION"


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return ``NUMSCRIPT_APP_VERSION`` if set, else the installed version.

    Source checkouts that were never installed report a development
    placeholder.
    """

    override = os.environ.get(_VERSION_ENV, "").strip()
    if override:
        return override.removeprefix("v")
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return _FALLBACK_VERSION


__all__ = ["DISTRIBUTION_NAME", "get_app_version"]
