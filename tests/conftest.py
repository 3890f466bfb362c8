from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _language_server_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep installs and configuration overrides away from real user data."""

    from app.config import reset_app_config_cache

    storage_dir = tmp_path_factory.mktemp("language_server")
    monkeypatch.setenv("NUMSCRIPT_STORAGE_DIR", str(storage_dir))
    monkeypatch.delenv("NUMSCRIPT_SERVER_PATH", raising=False)
    monkeypatch.delenv("NUMSCRIPT_APP_VERSION", raising=False)
    reset_app_config_cache()

    yield

    reset_app_config_cache()
