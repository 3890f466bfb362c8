"""Public API for the language server management package."""

from __future__ import annotations

from services.language_server.builder import Activation, activate, build_planner, deactivate
from services.language_server.commands import (
    DOWNLOAD_COMMAND,
    RESTART_COMMAND,
    Host,
    ServerCommands,
)
from services.language_server.constants import API_URL, EXECUTABLE_NAME, GITHUB_ACCEPT_HEADER
from services.language_server.fetcher import ArtifactDownload, ArtifactFetcher
from services.language_server.installation_planner import InstallationPlanner, InstallContext
from services.language_server.models import (
    Asset,
    AssetNotFoundError,
    DecompressionError,
    DownloadProgress,
    FileSystemError,
    HttpStatusError,
    InstalledRecord,
    LanguageServerError,
    NetworkError,
    ProcessLaunchError,
    ReleaseDescriptor,
    ReleaseParseError,
    ServerState,
    StaleReleaseError,
    UnsupportedPlatformError,
    UserDeclinedError,
)
from services.language_server.platforms import PlatformTag, current_platform, match, select_asset
from services.language_server.providers import GitHubReleaseResolver, ReleaseResolver
from services.language_server.state import VersionStore
from services.language_server.supervisor import (
    ServerLauncher,
    ServerSupervisor,
    SubprocessLauncher,
    server_options,
)

__all__ = [
    "API_URL",
    "DOWNLOAD_COMMAND",
    "EXECUTABLE_NAME",
    "GITHUB_ACCEPT_HEADER",
    "RESTART_COMMAND",
    "Activation",
    "ArtifactDownload",
    "ArtifactFetcher",
    "Asset",
    "AssetNotFoundError",
    "DecompressionError",
    "DownloadProgress",
    "FileSystemError",
    "GitHubReleaseResolver",
    "Host",
    "HttpStatusError",
    "InstallContext",
    "InstallationPlanner",
    "InstalledRecord",
    "LanguageServerError",
    "NetworkError",
    "PlatformTag",
    "ProcessLaunchError",
    "ReleaseDescriptor",
    "ReleaseParseError",
    "ReleaseResolver",
    "ServerCommands",
    "ServerLauncher",
    "ServerState",
    "ServerSupervisor",
    "StaleReleaseError",
    "SubprocessLauncher",
    "UnsupportedPlatformError",
    "UserDeclinedError",
    "VersionStore",
    "activate",
    "build_planner",
    "current_platform",
    "deactivate",
    "match",
    "select_asset",
    "server_options",
]
