"""Map the running platform onto release asset names."""

from __future__ import annotations

import logging
import platform
import sys
from enum import Enum
from typing import Iterable

from services.language_server.constants import BUILD_FROM_SOURCE_HINT
from services.language_server.models import Asset, AssetNotFoundError, UnsupportedPlatformError

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "PlatformTag",
    "current_platform",
    "match",
    "select_asset",
]


class PlatformTag(str, Enum):
    """Platform identifiers used in release asset names."""

    WINDOWS_64 = "Windows-64bit"
    LINUX_64 = "Linux-64bit"
    LINUX_ARM64 = "Linux-ARM64"
    MACOS_64 = "macOS-64bit"
    MACOS_ARM64 = "macOS-ARM64"


class _Arch(str, Enum):
    X64 = "x64"
    ARM64 = "arm64"


class _OperatingSystem(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    DARWIN = "darwin"


_ARCH_ALIASES = {
    "x64": _Arch.X64,
    "x86_64": _Arch.X64,
    "amd64": _Arch.X64,
    "arm64": _Arch.ARM64,
    "aarch64": _Arch.ARM64,
}

_OS_ALIASES = {
    "windows": _OperatingSystem.WINDOWS,
    "win32": _OperatingSystem.WINDOWS,
    "linux": _OperatingSystem.LINUX,
    "darwin": _OperatingSystem.DARWIN,
    "macos": _OperatingSystem.DARWIN,
}

_PLATFORM_TABLE = {
    (_Arch.X64, _OperatingSystem.WINDOWS): PlatformTag.WINDOWS_64,
    (_Arch.X64, _OperatingSystem.LINUX): PlatformTag.LINUX_64,
    (_Arch.ARM64, _OperatingSystem.LINUX): PlatformTag.LINUX_ARM64,
    (_Arch.X64, _OperatingSystem.DARWIN): PlatformTag.MACOS_64,
    (_Arch.ARM64, _OperatingSystem.DARWIN): PlatformTag.MACOS_ARM64,
}


def match(arch: str, os_name: str) -> PlatformTag:
    """Return the :class:`PlatformTag` for ``arch`` and ``os_name``.

    Both values are matched case-insensitively and accept the common
    spellings reported by Python and Node (``x86_64``/``x64``,
    ``win32``/``windows`` and so on).  Pairs without a prebuilt binary raise
    :class:`UnsupportedPlatformError` carrying a build-from-source hint.
    """

    normalised_arch = _ARCH_ALIASES.get(arch.strip().lower())
    normalised_os = _OS_ALIASES.get(os_name.strip().lower())
    tag = None
    if normalised_arch is not None and normalised_os is not None:
        tag = _PLATFORM_TABLE.get((normalised_arch, normalised_os))
    if tag is None:
        _LOGGER.error("No prebuilt language server for platform %s %s", arch, os_name)
        raise UnsupportedPlatformError(arch, os_name, BUILD_FROM_SOURCE_HINT)
    _LOGGER.debug("Platform %s %s maps to %s", arch, os_name, tag.value)
    return tag


def current_platform() -> PlatformTag:
    """Return the tag for the interpreter's own platform."""

    return match(platform.machine(), sys.platform)


def select_asset(assets: Iterable[Asset], tag: PlatformTag) -> Asset:
    """Return the first asset whose name mentions ``tag``."""

    for asset in assets:
        if tag.value in asset.name:
            _LOGGER.info("Selected release asset %s for %s", asset.name, tag.value)
            return asset
    raise AssetNotFoundError(f"The latest release has no asset for {tag.value}")
