"""Durable record of the installed language server release."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from services.language_server.constants import PATH_KEY, STATE_FILE_NAME, TIMESTAMP_KEY
from services.language_server.models import FileSystemError, InstalledRecord, StaleReleaseError

_LOGGER = logging.getLogger(__name__)


class VersionStore:
    """Persist the last successfully installed release as a small JSON file.

    The file lives in the per-user storage directory so it survives restarts
    of the host.  :meth:`set` is the only mutator and must only be called
    once an extraction has completed.
    """

    def __init__(self, storage_dir: Path) -> None:
        self._path = Path(storage_dir) / STATE_FILE_NAME

    def get(self) -> InstalledRecord | None:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            _LOGGER.debug("Unable to read installed record at %s", self._path, exc_info=True)
            return None

        try:
            data: Dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError:
            _LOGGER.warning("Ignoring corrupt installed record at %s", self._path)
            return None
        if not isinstance(data, dict):
            return None

        timestamp = data.get(TIMESTAMP_KEY)
        path = data.get(PATH_KEY)
        if not isinstance(timestamp, str) or not timestamp:
            return None
        if not isinstance(path, str) or not path:
            return None
        return InstalledRecord(timestamp=timestamp, path=path)

    def set(self, record: InstalledRecord, *, force: bool = False) -> None:
        current = self.get()
        if current is not None and not force and is_timestamp_newer(record.timestamp, current.timestamp):
            raise StaleReleaseError(
                f"Refusing to replace installed release {current.timestamp} "
                f"with older release {record.timestamp}"
            )

        payload = json.dumps(
            {TIMESTAMP_KEY: record.timestamp, PATH_KEY: record.path}, indent=2, sort_keys=True
        )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload + "\n")
                os.replace(temp_name, self._path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise FileSystemError(f"Could not save installed record to {self._path}: {exc}") from exc
        _LOGGER.info("Recorded installed release %s at %s", record.timestamp, record.path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp such as GitHub's ``published_at``."""

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def is_timestamp_newer(current: str, candidate: str) -> bool:
    """Return ``True`` if ``candidate`` was published strictly after ``current``.

    Unparseable or timezone-mismatched values never count as newer.
    """

    current_time = parse_timestamp(current)
    candidate_time = parse_timestamp(candidate)
    if current_time is None or candidate_time is None:
        return False
    try:
        return candidate_time > current_time
    except TypeError:
        return False


__all__ = ["VersionStore", "is_timestamp_newer", "parse_timestamp"]
