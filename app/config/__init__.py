"""Application-wide configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_SERVER_PATH_ENV = "NUMSCRIPT_SERVER_PATH"
_STORAGE_DIR_ENV = "NUMSCRIPT_STORAGE_DIR"
_DEFAULT_RELEASE_URL = "https://api.github.com/repos/numary/numscript-ls/releases/latest"
_DEFAULT_EXECUTABLE_NAME = "numscript-ls"
_DEFAULT_STORAGE_DIR = "~/.numscript/language-server"
_APP_CONFIG_CACHE: AppConfig | None = None


@dataclass(frozen=True)
class LanguageServerConfig:
    """Settings controlling where the language server comes from."""

    server_path: str
    release_url: str
    executable_name: str
    storage_dir: Path
    request_timeout: float
    download_timeout: float
    shutdown_timeout: float
    chunk_size: int


@dataclass(frozen=True)
class AppConfig:
    """Structured configuration values for the application."""

    language_server: LanguageServerConfig


def get_app_config() -> AppConfig:
    """Return the cached application configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config()
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from ``path`` or the bundled JSON resource.

    ``NUMSCRIPT_SERVER_PATH`` and ``NUMSCRIPT_STORAGE_DIR`` take precedence
    over values read from the file.
    """

    data = _read_config_data(path)
    section = data.get("language_server") if isinstance(data, Mapping) else None
    return AppConfig(language_server=_parse_language_server_section(section))


def get_language_server_config() -> LanguageServerConfig:
    """Convenience accessor for the language server configuration."""

    return get_app_config().language_server


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_language_server_section(section: Mapping[str, Any] | None) -> LanguageServerConfig:
    if not isinstance(section, Mapping):
        section = {}

    server_path = os.environ.get(_SERVER_PATH_ENV)
    if server_path is None:
        server_path = _coerce_text(section.get("server_path"), default="")

    storage_dir = os.environ.get(_STORAGE_DIR_ENV) or _coerce_text(
        section.get("storage_dir"), default=""
    )

    return LanguageServerConfig(
        server_path=server_path.strip(),
        release_url=_coerce_text(section.get("release_url"), default=_DEFAULT_RELEASE_URL) or _DEFAULT_RELEASE_URL,
        executable_name=_coerce_text(section.get("executable_name"), default=_DEFAULT_EXECUTABLE_NAME)
        or _DEFAULT_EXECUTABLE_NAME,
        storage_dir=Path(storage_dir or _DEFAULT_STORAGE_DIR).expanduser(),
        request_timeout=_coerce_positive_float(section.get("request_timeout"), default=30.0),
        download_timeout=_coerce_positive_float(
            section.get("download_timeout"), default=600.0
        ),
        shutdown_timeout=_coerce_positive_float(
            section.get("shutdown_timeout"), default=5.0
        ),
        chunk_size=_coerce_positive_int(section.get("chunk_size"), default=64 * 1024),
    )


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str):
        return value.strip()
    return default


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        candidate = value
    elif isinstance(value, (float, str)):
        try:
            number = float(value)
        except ValueError:
            return default
        if not isfinite(number):
            return default
        candidate = int(number)
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if not isinstance(value, (int, float, str)):
        return default
    try:
        candidate = float(value)
    except (ValueError, OverflowError):
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


__all__ = [
    "AppConfig",
    "LanguageServerConfig",
    "get_app_config",
    "get_language_server_config",
    "load_app_config",
    "reset_app_config_cache",
]
