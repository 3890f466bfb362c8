from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from services.language_server import (
    AssetNotFoundError,
    InstallContext,
    InstallationPlanner,
    InstalledRecord,
    PlatformTag,
    UserDeclinedError,
    VersionStore,
)
from tests.unit.language_server_test_utils import (
    DOWNLOAD_URL,
    FakeResponse,
    FakeSession,
    RecordingConsent,
    RecordingFetcher,
    StaticReleaseResolver,
    build_server_tarball,
    make_release,
)


def _planner(
    tmp_path: Path,
    release_time: str = "2024-01-01T00:00:00Z",
    tag: PlatformTag = PlatformTag.LINUX_64,
) -> tuple[InstallationPlanner, StaticReleaseResolver, RecordingFetcher, VersionStore, FakeSession]:
    resolver = StaticReleaseResolver(make_release(release_time))
    session = FakeSession({DOWNLOAD_URL: FakeResponse(body=build_server_tarball())})
    fetcher = RecordingFetcher(session)
    store = VersionStore(tmp_path)
    planner = InstallationPlanner(resolver, store, fetcher, platform_tag=lambda: tag)
    return planner, resolver, fetcher, store, session


def _context(tmp_path: Path, consent: RecordingConsent, progress: list | None = None) -> InstallContext:
    return InstallContext(
        storage_dir=tmp_path,
        consent=consent,
        on_progress=progress.append if progress is not None else None,
    )


def test_override_is_returned_without_network_access(tmp_path: Path) -> None:
    planner, resolver, fetcher, store, session = _planner(tmp_path)
    consent = RecordingConsent(answer=True)

    path = asyncio.run(planner.resolve_path("/usr/local/bin/server", _context(tmp_path, consent)))

    assert path == "/usr/local/bin/server"
    assert resolver.calls == 0
    assert session.requests == []
    assert consent.prompts == []
    assert store.get() is None


def test_cached_release_is_reused_without_download(tmp_path: Path) -> None:
    planner, resolver, fetcher, store, _ = _planner(tmp_path)
    installed = tmp_path / "numscript-ls"
    installed.write_bytes(b"binary")
    store.set(InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=str(installed)))
    consent = RecordingConsent(answer=True)

    path = asyncio.run(planner.resolve_path("", _context(tmp_path, consent)))

    assert path == str(installed)
    assert resolver.calls == 1
    assert fetcher.fetched == []
    assert consent.prompts == []


def test_declined_consent_leaves_store_empty(tmp_path: Path) -> None:
    planner, _, fetcher, store, session = _planner(tmp_path)
    consent = RecordingConsent(answer=False)

    with pytest.raises(UserDeclinedError):
        asyncio.run(planner.resolve_path("", _context(tmp_path, consent)))

    assert len(consent.prompts) == 1
    assert fetcher.fetched == []
    assert session.requests == []
    assert store.get() is None


def test_missing_record_downloads_after_single_consent(tmp_path: Path) -> None:
    planner, _, fetcher, store, _ = _planner(tmp_path)
    consent = RecordingConsent(answer=True)
    progress: list = []

    path = asyncio.run(planner.resolve_path(None, _context(tmp_path, consent, progress)))

    assert len(consent.prompts) == 1
    assert fetcher.fetched == [(DOWNLOAD_URL, tmp_path)]
    assert Path(path).read_bytes() == b"#!/bin/sh\nexit 0\n"
    assert store.get() == InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=path)
    assert progress and progress[-1].bytes_read == progress[-1].total_bytes


def test_cached_record_with_missing_binary_is_reinstalled(tmp_path: Path) -> None:
    planner, _, fetcher, store, _ = _planner(tmp_path)
    store.set(InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=str(tmp_path / "gone")))

    path = asyncio.run(planner.resolve_path("", _context(tmp_path, RecordingConsent(answer=True))))

    assert len(fetcher.fetched) == 1
    assert store.get().path == path


def test_newer_installed_release_is_not_regressed(tmp_path: Path) -> None:
    planner, _, fetcher, store, _ = _planner(tmp_path, release_time="2023-06-01T00:00:00Z")
    installed = tmp_path / "numscript-ls"
    installed.write_bytes(b"binary")
    record = InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=str(installed))
    store.set(record)
    consent = RecordingConsent(answer=True)

    path = asyncio.run(planner.resolve_path("", _context(tmp_path, consent)))

    assert path == str(installed)
    assert fetcher.fetched == []
    assert store.get() == record


def test_newer_release_replaces_previous_install(tmp_path: Path) -> None:
    planner, _, fetcher, store, _ = _planner(tmp_path, release_time="2024-02-01T00:00:00Z")
    old_dir = tmp_path / "numscript-ls_0.1.0_Linux-64bit"
    old_dir.mkdir()
    (old_dir / "numscript-ls").write_bytes(b"old")
    store.set(InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=str(old_dir / "numscript-ls")))

    path = asyncio.run(planner.resolve_path("", _context(tmp_path, RecordingConsent(answer=True))))

    assert len(fetcher.fetched) == 1
    assert store.get() == InstalledRecord(timestamp="2024-02-01T00:00:00Z", path=path)
    assert not old_dir.exists()
    assert Path(path).exists()


def test_force_refresh_downloads_even_when_cached(tmp_path: Path) -> None:
    planner, resolver, fetcher, store, _ = _planner(tmp_path)
    installed = tmp_path / "numscript-ls"
    installed.write_bytes(b"binary")
    store.set(InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=str(installed)))
    consent = RecordingConsent(answer=True)

    path = asyncio.run(planner.force_refresh(_context(tmp_path, consent)))

    assert resolver.calls == 1
    assert len(consent.prompts) == 1
    assert len(fetcher.fetched) == 1
    assert path != str(installed)
    assert store.get() == InstalledRecord(timestamp="2024-01-01T00:00:00Z", path=path)
    assert installed.exists()


def test_missing_platform_asset_fails_without_record(tmp_path: Path) -> None:
    planner, _, fetcher, store, _ = _planner(tmp_path, tag=PlatformTag.WINDOWS_64)

    with pytest.raises(AssetNotFoundError):
        asyncio.run(planner.resolve_path("", _context(tmp_path, RecordingConsent(answer=True))))

    assert fetcher.fetched == []
    assert store.get() is None
