from __future__ import annotations

import asyncio
from pathlib import Path

from app.config import LanguageServerConfig
from services.language_server import (
    DOWNLOAD_COMMAND,
    RESTART_COMMAND,
    InstallationPlanner,
    PlatformTag,
    ServerState,
    VersionStore,
    activate,
    deactivate,
)
from tests.unit.language_server_test_utils import (
    API_URL,
    DOWNLOAD_URL,
    FakeLauncher,
    FakeResponse,
    FakeSession,
    RecordingFetcher,
    RecordingHost,
    StaticReleaseResolver,
    build_server_tarball,
    make_release,
)


def _config(tmp_path: Path, server_path: str = "") -> LanguageServerConfig:
    return LanguageServerConfig(
        server_path=server_path,
        release_url=API_URL,
        executable_name="numscript-ls",
        storage_dir=tmp_path,
        request_timeout=1.0,
        download_timeout=1.0,
        shutdown_timeout=1.0,
        chunk_size=128,
    )


def _planner(tmp_path: Path, session: FakeSession) -> InstallationPlanner:
    return InstallationPlanner(
        StaticReleaseResolver(make_release()),
        VersionStore(tmp_path),
        RecordingFetcher(session),
        platform_tag=lambda: PlatformTag.LINUX_64,
    )


def test_activate_starts_configured_server(tmp_path: Path) -> None:
    host = RecordingHost()
    launcher = FakeLauncher()

    async def scenario():
        activation = await activate(host, _config(tmp_path, "/usr/local/bin/server"), launcher=launcher)
        state = activation.supervisor.state
        await deactivate(activation)
        return activation, state

    activation, state = asyncio.run(scenario())

    assert activation.server_path == "/usr/local/bin/server"
    assert activation.error is None
    assert state is ServerState.RUNNING
    assert activation.supervisor.state is ServerState.STOPPED
    assert host.errors == []
    assert set(activation.commands.registry()) == {RESTART_COMMAND, DOWNLOAD_COMMAND}


def test_declined_download_is_reported_and_commands_stay_available(tmp_path: Path) -> None:
    host = RecordingHost(answer=False)
    session = FakeSession({DOWNLOAD_URL: FakeResponse(body=build_server_tarball())})
    launcher = FakeLauncher()

    async def scenario():
        activation = await activate(
            host, _config(tmp_path), planner=_planner(tmp_path, session), launcher=launcher
        )
        restarted = await activation.commands.restart_server()
        return activation, restarted

    activation, restarted = asyncio.run(scenario())

    assert activation.server_path is None
    assert activation.error is not None
    assert activation.supervisor.state is ServerState.STOPPED
    assert restarted is False
    assert len(host.errors) == 2
    assert "declined" in host.errors[0]
    assert launcher.events == []
    assert session.requests == []


def test_download_latest_installs_and_restarts(tmp_path: Path) -> None:
    host = RecordingHost(answer=True)
    session = FakeSession({DOWNLOAD_URL: FakeResponse(body=build_server_tarball())})
    launcher = FakeLauncher()

    async def scenario():
        activation = await activate(
            host, _config(tmp_path, "/usr/local/bin/server"), planner=_planner(tmp_path, session), launcher=launcher
        )
        updated = await activation.commands.registry()[DOWNLOAD_COMMAND]()
        return activation, updated

    activation, updated = asyncio.run(scenario())

    assert updated is True
    installed = VersionStore(tmp_path).get()
    assert installed is not None
    assert activation.supervisor.path == installed.path
    assert launcher.events == [
        ("launch", "/usr/local/bin/server"),
        ("shutdown", "/usr/local/bin/server"),
        ("exited", "/usr/local/bin/server"),
        ("launch", installed.path),
    ]
    assert host.errors == []
    assert host.progress[-1].bytes_read == host.progress[-1].total_bytes
    assert any("updated" in message for message in host.infos)


def test_restart_failure_becomes_notification(tmp_path: Path) -> None:
    host = RecordingHost()
    launcher = FakeLauncher()

    async def scenario():
        activation = await activate(host, _config(tmp_path, "/usr/local/bin/server"), launcher=launcher)
        launcher.fail = True
        return activation, await activation.commands.restart_server()

    activation, restarted = asyncio.run(scenario())

    assert restarted is False
    assert activation.supervisor.state is ServerState.FAILED
    assert len(host.errors) == 1
    assert host.errors[0].startswith("Could not restart the language server")
