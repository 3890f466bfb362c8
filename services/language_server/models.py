"""Data models and errors used by the language server services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


@dataclass(frozen=True)
class Asset:
    """A downloadable file attached to a release."""

    name: str
    download_url: str


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Metadata describing a published language server release."""

    name: str
    id: int
    published_at: str
    assets: Tuple[Asset, ...] = ()


@dataclass(frozen=True)
class InstalledRecord:
    """The persisted pointer to the currently installed server binary."""

    timestamp: str
    path: str


@dataclass(frozen=True)
class DownloadProgress:
    """Bytes received so far for a single download."""

    bytes_read: int
    total_bytes: int | None = None

    @property
    def fraction(self) -> float | None:
        if not self.total_bytes:
            return None
        return min(self.bytes_read / self.total_bytes, 1.0)


class ServerState(str, Enum):
    """Lifecycle states of the supervised server process."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class LanguageServerError(RuntimeError):
    """Base class for failures surfaced to the operator."""


class NetworkError(LanguageServerError):
    """Raised when a request fails at the transport level."""


class HttpStatusError(LanguageServerError):
    """Raised when a server answers with a non-success status code."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"Got response {status} when requesting {url}")
        self.status = status
        self.url = url


class ReleaseParseError(LanguageServerError):
    """Raised when release metadata does not match the expected shape."""


class UnsupportedPlatformError(LanguageServerError):
    """Raised when no prebuilt binary exists for the running platform."""

    def __init__(self, arch: str, os_name: str, hint: str) -> None:
        super().__init__(f"Unsupported platform {arch} {os_name}. {hint}")
        self.arch = arch
        self.os = os_name
        self.hint = hint


class AssetNotFoundError(LanguageServerError):
    """Raised when a release omits the asset for a supported platform."""


class UserDeclinedError(LanguageServerError):
    """Raised when the user refuses to download the language server."""


class DecompressionError(LanguageServerError):
    """Raised when the downloaded archive cannot be decoded."""


class FileSystemError(LanguageServerError):
    """Raised when extracted files cannot be written."""


class StaleReleaseError(LanguageServerError):
    """Raised when a record update would regress the installed release."""


class ProcessLaunchError(LanguageServerError):
    """Raised when the server process cannot be started."""
