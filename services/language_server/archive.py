"""Extraction of gzip-compressed tar archives streamed from the network."""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import shutil
import stat
import sys
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

from services.language_server import constants
from services.language_server.models import (
    DecompressionError,
    FileSystemError,
    LanguageServerError,
)


_LOGGER = logging.getLogger(__name__)

MAX_ARCHIVE_TOTAL_BYTES = 1024 * 1024 * 1024  # 1 GiB
MAX_ARCHIVE_ENTRIES = 2000
QUEUE_DEPTH = 8

_END_OF_STREAM = None
_ABORTED = object()
_DRAIN_SIZE = 64 * 1024


class _StreamAborted(Exception):
    """Raised in the extraction thread when the download was abandoned."""


class _ChunkReader:
    """Blocking, read-only file object over chunks queued on the event loop.

    Only the extraction thread calls :meth:`read`; each missing chunk is
    fetched by scheduling ``queue.get()`` on the loop and waiting for it.
    """

    def __init__(self, queue: asyncio.Queue[Any], loop: asyncio.AbstractEventLoop) -> None:
        self._queue = queue
        self._loop = loop
        self._buffer = bytearray()
        self._eof = False

    def read(self, size: int = -1) -> bytes:
        while not self._buffer and not self._eof:
            item = asyncio.run_coroutine_threadsafe(self._queue.get(), self._loop).result()
            if item is _ABORTED:
                raise _StreamAborted("download was interrupted")
            if item is _END_OF_STREAM:
                self._eof = True
            else:
                self._buffer += item
        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


class StreamingTarExtractor:
    """Unpack a ``.tar.gz`` download into ``target_dir`` while it arrives.

    Compressed chunks handed to :meth:`feed` are decoded by ``gzip`` and
    ``tarfile`` in stream mode on a worker thread, so file writes never run
    on the event loop.  :meth:`close` waits for the archive to be fully
    written; :meth:`abort` stops the worker after a failed download.

    Only regular files and directories are materialised; links and device
    nodes are skipped.  Malformed input raises :class:`DecompressionError`,
    write failures raise :class:`FileSystemError`.
    """

    def __init__(self, target_dir: Path, *, queue_depth: int = QUEUE_DEPTH) -> None:
        self._target_dir = Path(target_dir)
        self._queue_depth = queue_depth
        self._queue: asyncio.Queue[Any] | None = None
        self._worker: asyncio.Future[None] | None = None
        self.entries = 0
        self.total_bytes = 0

    async def feed(self, chunk: bytes) -> None:
        if chunk:
            await self._send(chunk)

    async def close(self) -> None:
        await self._send(_END_OF_STREAM)
        await self._start()
        _LOGGER.info("Extracted %s entries totalling %s bytes", self.entries, self.total_bytes)

    async def abort(self) -> None:
        """Stop the worker thread; extraction errors are no longer relevant."""

        worker = self._worker
        if worker is None:
            return
        if not worker.done():
            assert self._queue is not None
            put = asyncio.ensure_future(self._queue.put(_ABORTED))
            await asyncio.wait({put, worker}, return_when=asyncio.FIRST_COMPLETED)
            if not put.done():
                put.cancel()
        try:
            await worker
        except (_StreamAborted, LanguageServerError) as exc:
            _LOGGER.debug("Extraction into %s stopped: %s", self._target_dir, exc)

    def _start(self) -> asyncio.Future[None]:
        if self._worker is None:
            self._queue = asyncio.Queue(maxsize=self._queue_depth)
            reader = _ChunkReader(self._queue, asyncio.get_running_loop())
            self._worker = asyncio.ensure_future(asyncio.to_thread(self._extract, reader))
        return self._worker

    async def _send(self, item: Any) -> None:
        worker = self._start()
        assert self._queue is not None
        put = asyncio.ensure_future(self._queue.put(item))
        await asyncio.wait({put, worker}, return_when=asyncio.FIRST_COMPLETED)
        if not put.done():
            # The worker stopped reading; surface its error.
            put.cancel()
            worker.result()

    def _extract(self, reader: _ChunkReader) -> None:
        root = self._target_dir.resolve()
        try:
            with gzip.GzipFile(fileobj=reader, mode="rb") as compressed:
                with tarfile.open(fileobj=compressed, mode="r|") as archive:
                    for member in archive:
                        self._extract_member(archive, member, root)
                # Reading to the end validates the gzip trailer.
                while compressed.read(_DRAIN_SIZE):
                    pass
        except (tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error) as exc:
            raise DecompressionError(f"Downloaded archive is not a valid .tar.gz file: {exc}") from exc
        except OSError as exc:
            raise FileSystemError(f"Could not extract the language server into {root}: {exc}") from exc

    def _extract_member(self, archive: tarfile.TarFile, member: tarfile.TarInfo, root: Path) -> None:
        self.entries += 1
        if self.entries > MAX_ARCHIVE_ENTRIES:
            raise DecompressionError("Downloaded archive contained too many entries")

        destination = _destination(root, member.name)
        if member.isdir():
            destination.mkdir(parents=True, exist_ok=True)
            return
        if not member.isfile():
            _LOGGER.debug("Skipping archive entry %s of type %r", member.name, member.type)
            return

        self.total_bytes += member.size
        if self.total_bytes > MAX_ARCHIVE_TOTAL_BYTES:
            raise DecompressionError("Downloaded archive expanded beyond safe limits")

        destination.parent.mkdir(parents=True, exist_ok=True)
        source = archive.extractfile(member)
        assert source is not None
        with source, destination.open("wb") as target:
            shutil.copyfileobj(source, target)
        mode = member.mode & 0o777
        if mode:
            os.chmod(destination, mode | stat.S_IRUSR | stat.S_IWUSR)
        _LOGGER.debug("Extracted archive member %s", destination)


def _destination(root: Path, name: str) -> Path:
    member = PurePosixPath(name)
    if member.is_absolute() or name.startswith("\\") or ".." in member.parts:
        raise DecompressionError(f"Downloaded archive contained an unsafe path: {name}")
    parts = [part for part in member.parts if part not in ("", ".")]
    if not parts:
        return root
    destination = root.joinpath(*parts)
    try:
        destination.resolve().relative_to(root)
    except ValueError:
        raise DecompressionError(f"Downloaded archive contained an unsafe path: {name}")
    return destination


def asset_base_name(url: str) -> str:
    """Return the archive file name from ``url`` without its compression suffix."""

    name = unquote(PurePosixPath(urlparse(url).path).name)
    lowered = name.lower()
    for suffix in constants.ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            name = name[: -len(suffix)]
            break
    return name or "server"


def executable_names(name: str = constants.EXECUTABLE_NAME) -> tuple[str, ...]:
    if sys.platform.startswith("win") and not name.lower().endswith(constants.WINDOWS_EXECUTABLE_SUFFIX):
        return (name + constants.WINDOWS_EXECUTABLE_SUFFIX, name)
    return (name,)


def locate_executable(root: Path, name: str = constants.EXECUTABLE_NAME) -> Path:
    """Return the shallowest file in ``root`` named like the server executable."""

    candidates: list[Path] = []
    for candidate_name in executable_names(name):
        candidates.extend(path for path in root.rglob(candidate_name) if path.is_file())
    if not candidates:
        raise FileSystemError(f"Downloaded archive did not contain {name}")

    def _sort_key(path: Path) -> tuple[int, str]:
        return (len(path.relative_to(root).parts), path.name.lower())

    candidates.sort(key=_sort_key)
    chosen = candidates[0]
    _LOGGER.debug("Selected executable %s from archive", chosen)
    return chosen


def make_executable(path: Path) -> None:
    try:
        current = path.stat().st_mode
        path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as exc:
        raise FileSystemError(f"Could not mark {path} as executable: {exc}") from exc


__all__ = [
    "MAX_ARCHIVE_ENTRIES",
    "MAX_ARCHIVE_TOTAL_BYTES",
    "StreamingTarExtractor",
    "asset_base_name",
    "executable_names",
    "locate_executable",
    "make_executable",
]
