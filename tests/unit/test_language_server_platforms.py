from __future__ import annotations

import pytest

from services.language_server import (
    Asset,
    AssetNotFoundError,
    PlatformTag,
    UnsupportedPlatformError,
    match,
    select_asset,
)


@pytest.mark.parametrize(
    ("arch", "os_name", "expected"),
    [
        ("x64", "windows", PlatformTag.WINDOWS_64),
        ("x64", "linux", PlatformTag.LINUX_64),
        ("arm64", "linux", PlatformTag.LINUX_ARM64),
        ("x64", "darwin", PlatformTag.MACOS_64),
        ("arm64", "darwin", PlatformTag.MACOS_ARM64),
        ("AMD64", "win32", PlatformTag.WINDOWS_64),
        ("x86_64", "Linux", PlatformTag.LINUX_64),
        ("aarch64", "linux", PlatformTag.LINUX_ARM64),
    ],
)
def test_match_returns_tag_for_supported_platforms(arch: str, os_name: str, expected: PlatformTag) -> None:
    assert match(arch, os_name) is expected


@pytest.mark.parametrize(
    ("arch", "os_name"),
    [
        ("arm64", "windows"),
        ("ia32", "linux"),
        ("x64", "freebsd"),
        ("", ""),
    ],
)
def test_match_rejects_unsupported_platforms(arch: str, os_name: str) -> None:
    with pytest.raises(UnsupportedPlatformError) as excinfo:
        match(arch, os_name)

    error = excinfo.value
    assert error.arch == arch
    assert error.os == os_name
    assert "build the server yourself" in error.hint
    assert "server path" in str(error)


def test_select_asset_takes_first_match_in_listed_order() -> None:
    assets = [
        Asset("numscript-ls_Windows-64bit.tar.gz", "https://example.invalid/win"),
        Asset("numscript-ls_Linux-64bit.tar.gz", "https://example.invalid/linux-a"),
        Asset("numscript-ls_Linux-64bit-debug.tar.gz", "https://example.invalid/linux-b"),
    ]

    asset = select_asset(assets, PlatformTag.LINUX_64)

    assert asset.download_url == "https://example.invalid/linux-a"


def test_select_asset_reports_missing_asset_distinctly() -> None:
    assets = [Asset("numscript-ls_Linux-64bit.tar.gz", "https://example.invalid/linux")]

    with pytest.raises(AssetNotFoundError) as excinfo:
        select_asset(assets, PlatformTag.MACOS_ARM64)

    assert not isinstance(excinfo.value, UnsupportedPlatformError)
    assert "macOS-ARM64" in str(excinfo.value)
