"""Download and unpack language server release assets."""

from __future__ import annotations

import asyncio
import functools
import logging
import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator, Mapping

import aiohttp

from services.language_server.archive import (
    StreamingTarExtractor,
    asset_base_name,
    locate_executable,
    make_executable,
)
from services.language_server.constants import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_TIMEOUT,
    EXECUTABLE_NAME,
    STAGING_PREFIX,
)
from services.language_server.models import (
    DownloadProgress,
    FileSystemError,
    HttpStatusError,
    NetworkError,
)
from services.language_server.providers import SessionFactory, user_agent


_LOGGER = logging.getLogger(__name__)


class ArtifactDownload:
    """A single download, consumed as an async stream of progress events.

    The stream is lazy: nothing is requested until iteration starts.  It
    can only be iterated once.  When it is exhausted without error,
    :attr:`installed_path` points at the extracted executable.
    """

    def __init__(self, fetcher: "ArtifactFetcher", url: str, destination_dir: Path) -> None:
        self._fetcher = fetcher
        self._url = url
        self._destination_dir = Path(destination_dir)
        self._consumed = False
        self._installed_path: Path | None = None

    @property
    def installed_path(self) -> Path:
        if self._installed_path is None:
            raise RuntimeError("Download has not completed")
        return self._installed_path

    def __aiter__(self) -> AsyncIterator[DownloadProgress]:
        if self._consumed:
            raise RuntimeError("Download progress can only be consumed once")
        self._consumed = True
        return self._run()

    async def wait(self) -> Path:
        """Drain the progress stream and return the installed executable."""

        async for _ in self:
            pass
        return self.installed_path

    async def _run(self) -> AsyncIterator[DownloadProgress]:
        fetcher = self._fetcher
        asset_name = asset_base_name(self._url)
        staging = await fetcher._claim_staging_dir(self._destination_dir, asset_name)
        extractor = StreamingTarExtractor(staging)
        completed = False
        try:
            try:
                async with fetcher.session_factory() as session:
                    async with session.get(
                        self._url,
                        headers={"User-Agent": user_agent()},
                        timeout=aiohttp.ClientTimeout(total=fetcher.timeout),
                    ) as response:
                        if not 200 <= response.status < 300:
                            _LOGGER.error("Couldn't download %s: got status code %s", self._url, response.status)
                            raise HttpStatusError(response.status, self._url)
                        total = _content_length(response.headers)
                        _LOGGER.info(
                            "Downloading server: %s bytes",
                            total if total is not None else "unknown",
                        )
                        bytes_read = 0
                        async for chunk in response.content.iter_chunked(fetcher.chunk_size):
                            await extractor.feed(chunk)
                            bytes_read += len(chunk)
                            _LOGGER.debug("%s / %s", bytes_read, total if total is not None else "?")
                            yield DownloadProgress(bytes_read, total)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                _LOGGER.warning("Download of %s failed: %s", self._url, exc)
                raise NetworkError(f"Could not download {self._url}: {exc}") from exc

            await extractor.close()
            installed = await fetcher._install(staging, self._destination_dir / asset_name)
            completed = True
        finally:
            if not completed:
                await extractor.abort()
                _LOGGER.debug("Removing incomplete extraction at %s", staging)
                await asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True)
            fetcher._release_staging_dir(staging)

        _LOGGER.info("Installed language server at %s", installed)
        self._installed_path = installed


class ArtifactFetcher:
    """Stream compressed release assets into the local storage directory.

    Downloads may overlap.  Each one extracts into its own staging
    directory, which the fetcher tracks until the download ends so that
    stale-directory cleanup never touches it.  Staging setup and promotion
    into the final directory are serialised per fetcher.
    """

    def __init__(
        self,
        *,
        executable_name: str = EXECUTABLE_NAME,
        timeout: float = DOWNLOAD_TIMEOUT,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.executable_name = executable_name
        self.timeout = timeout
        self.chunk_size = chunk_size
        # The payload is a gzip archive in its own right; never let the
        # HTTP layer strip that encoding.
        self.session_factory = session_factory or functools.partial(
            aiohttp.ClientSession, auto_decompress=False
        )
        self._active_staging: set[Path] = set()
        self._layout_lock = asyncio.Lock()

    def fetch(self, url: str, destination_dir: Path) -> ArtifactDownload:
        """Return a lazy download of ``url`` into ``destination_dir/<asset>``."""

        return ArtifactDownload(self, url, destination_dir)

    async def _claim_staging_dir(self, destination_dir: Path, asset_name: str) -> Path:
        prefix = f"{STAGING_PREFIX}{asset_name}-"
        staging = destination_dir / f"{prefix}{uuid.uuid4().hex[:8]}"
        async with self._layout_lock:
            in_flight = frozenset(
                path.name for path in self._active_staging if path.parent == destination_dir
            )
            await asyncio.to_thread(_prepare_staging_dir, destination_dir, staging, prefix, in_flight)
            self._active_staging.add(staging)
        return staging

    def _release_staging_dir(self, staging: Path) -> None:
        self._active_staging.discard(staging)

    async def _install(self, staging: Path, final_dir: Path) -> Path:
        async with self._layout_lock:
            return await asyncio.to_thread(_finalise, staging, final_dir, self.executable_name)


def _content_length(headers: Mapping[str, str]) -> int | None:
    raw = headers.get("Content-Length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _prepare_staging_dir(destination_dir: Path, staging: Path, prefix: str, in_flight: frozenset[str]) -> None:
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        for stale in destination_dir.glob(f"{prefix}*"):
            if stale.name in in_flight:
                continue
            _LOGGER.info("Removing stale partial download %s", stale)
            shutil.rmtree(stale, ignore_errors=True)
        staging.mkdir()
    except OSError as exc:
        raise FileSystemError(f"Could not prepare download directory {destination_dir}: {exc}") from exc


def _finalise(staging: Path, final_dir: Path, executable_name: str) -> Path:
    executable = locate_executable(staging, executable_name)
    relative = executable.relative_to(staging)
    _promote(staging, final_dir)
    installed = final_dir / relative
    make_executable(installed)
    return installed


def _promote(staging: Path, final_dir: Path) -> None:
    """Move a completed extraction into place, replacing an older copy."""

    backup: Path | None = None
    try:
        if final_dir.exists():
            backup = final_dir.with_name(f".{final_dir.name}.old-{uuid.uuid4().hex[:8]}")
            final_dir.rename(backup)
        staging.rename(final_dir)
    except OSError as exc:
        if backup is not None and not final_dir.exists():
            try:
                backup.rename(final_dir)
            except OSError:
                _LOGGER.warning("Could not restore previous install from %s", backup, exc_info=True)
            backup = None
        raise FileSystemError(f"Could not move extracted server into {final_dir}: {exc}") from exc
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


__all__ = ["ArtifactDownload", "ArtifactFetcher"]
