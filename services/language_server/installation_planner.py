"""Decide which language server executable to run, installing it if needed."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from services.language_server import platforms
from services.language_server.fetcher import ArtifactFetcher
from services.language_server.models import (
    DownloadProgress,
    InstalledRecord,
    ReleaseDescriptor,
    UserDeclinedError,
)
from services.language_server.platforms import PlatformTag
from services.language_server.providers import ReleaseResolver
from services.language_server.state import VersionStore, is_timestamp_newer


_LOGGER = logging.getLogger(__name__)

CONSENT_MESSAGE = "Do you want to download the language server ?"

ConsentPrompt = Callable[[str], Awaitable[bool]]
ProgressCallback = Callable[[DownloadProgress], None]


@dataclass(frozen=True)
class InstallContext:
    """Host-provided collaborators for a single resolution."""

    storage_dir: Path
    consent: ConsentPrompt
    on_progress: ProgressCallback | None = None


class InstallationPlanner:
    """Produce a runnable server path from configuration, cache or download."""

    def __init__(
        self,
        resolver: ReleaseResolver,
        store: VersionStore,
        fetcher: ArtifactFetcher,
        *,
        platform_tag: Callable[[], PlatformTag] = platforms.current_platform,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._fetcher = fetcher
        self._platform_tag = platform_tag

    async def resolve_path(self, config_override: str | None, ctx: InstallContext) -> str:
        if config_override:
            _LOGGER.info("Using configured server path %s", config_override)
            return config_override

        release = await self._resolver.fetch_latest()
        record = self._store.get()
        _LOGGER.debug(
            "stored timestamp: %s, latest timestamp: %s",
            record.timestamp if record else None,
            release.published_at,
        )
        if record is not None and Path(record.path).exists():
            if record.timestamp == release.published_at:
                _LOGGER.info("Language server %s is up to date", record.timestamp)
                return record.path
            if is_timestamp_newer(release.published_at, record.timestamp):
                _LOGGER.warning(
                    "Latest release %s is older than installed %s; keeping installed server",
                    release.published_at,
                    record.timestamp,
                )
                return record.path

        return await self._install(release, ctx, force=False)

    async def force_refresh(self, ctx: InstallContext) -> str:
        """Install the latest release even when it is already cached."""

        release = await self._resolver.fetch_latest()
        return await self._install(release, ctx, force=True)

    async def _install(self, release: ReleaseDescriptor, ctx: InstallContext, *, force: bool) -> str:
        if not await ctx.consent(CONSENT_MESSAGE):
            _LOGGER.info("User refused to download the language server")
            raise UserDeclinedError("Download of the language server was declined")

        asset = platforms.select_asset(release.assets, self._platform_tag())
        download = self._fetcher.fetch(asset.download_url, ctx.storage_dir)
        async for progress in download:
            if ctx.on_progress is not None:
                ctx.on_progress(progress)
        installed = str(download.installed_path)

        previous = self._store.get()
        # A record whose binary has vanished may be replaced by any release.
        replace = force or previous is None or not Path(previous.path).exists()
        self._store.set(InstalledRecord(timestamp=release.published_at, path=installed), force=replace)
        if previous is not None:
            _remove_previous_install(Path(previous.path), Path(installed), ctx.storage_dir)
        return installed


def _remove_previous_install(previous: Path, current: Path, storage_dir: Path) -> None:
    try:
        storage_root = storage_dir.resolve()
        previous_dir = previous.resolve().parent
        relative = previous_dir.relative_to(storage_root)
    except (OSError, ValueError):
        return
    if not relative.parts:
        return
    install_dir = storage_root / relative.parts[0]
    try:
        current.resolve().relative_to(install_dir)
    except ValueError:
        _LOGGER.info("Removing previous language server install %s", install_dir)
        shutil.rmtree(install_dir, ignore_errors=True)


__all__ = [
    "CONSENT_MESSAGE",
    "ConsentPrompt",
    "InstallContext",
    "InstallationPlanner",
    "ProgressCallback",
]
