"""Release metadata resolvers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, Protocol

import aiohttp

from app.version import get_app_version
from services.language_server.constants import API_URL, GITHUB_ACCEPT_HEADER, REQUEST_TIMEOUT
from services.language_server.models import (
    Asset,
    HttpStatusError,
    NetworkError,
    ReleaseDescriptor,
    ReleaseParseError,
)


_LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


class ReleaseResolver(Protocol):
    """Protocol describing release metadata sources."""

    async def fetch_latest(self) -> ReleaseDescriptor:
        """Return the newest published release."""


def user_agent() -> str:
    return f"numscript-server-manager/{get_app_version()}"


class GitHubReleaseResolver:
    """Fetch the latest release from the GitHub Releases API.

    A single request is made per call.  Transport failures raise
    :class:`NetworkError` and non-2xx answers raise :class:`HttpStatusError`;
    retrying is left to the caller.
    """

    def __init__(
        self,
        api_url: str = API_URL,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session_factory: SessionFactory = aiohttp.ClientSession,
    ) -> None:
        self._api_url = api_url
        self._timeout = timeout
        self._session_factory = session_factory

    async def fetch_latest(self) -> ReleaseDescriptor:
        payload = await self._request_json(self._api_url)
        release = parse_release(payload)
        _LOGGER.info(
            "Latest release %s published at %s with %s assets",
            release.name,
            release.published_at,
            len(release.assets),
        )
        return release

    async def _request_json(self, url: str) -> Any:
        headers = {"Accept": GITHUB_ACCEPT_HEADER, "User-Agent": user_agent()}
        _LOGGER.debug("Requesting release metadata from %s", url)
        try:
            async with self._session_factory() as session:
                async with session.get(
                    url, headers=headers, timeout=aiohttp.ClientTimeout(total=self._timeout)
                ) as response:
                    if not 200 <= response.status < 300:
                        _LOGGER.error("Error fetching latest release info: HTTP %s", response.status)
                        raise HttpStatusError(response.status, url)
                    try:
                        return await response.json(content_type=None)
                    except ValueError as exc:
                        raise ReleaseParseError(f"Release metadata was not valid JSON: {exc}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            _LOGGER.warning("Failed to query release endpoint %s: %s", url, exc)
            raise NetworkError(f"Could not reach {url}: {exc}") from exc


def parse_release(payload: Any) -> ReleaseDescriptor:
    """Validate a GitHub release payload and return a :class:`ReleaseDescriptor`."""

    if not isinstance(payload, Mapping):
        raise ReleaseParseError("Release metadata must be a JSON object")

    name = payload.get("name")
    if name is None:
        name = payload.get("tag_name", "")
    release_id = payload.get("id")
    published_at = payload.get("published_at")
    raw_assets = payload.get("assets")

    if not isinstance(name, str):
        raise ReleaseParseError("Release 'name' must be a string")
    if isinstance(release_id, bool) or not isinstance(release_id, int):
        raise ReleaseParseError("Release 'id' must be an integer")
    if not isinstance(published_at, str) or not published_at.strip():
        raise ReleaseParseError("Release 'published_at' must be a non-empty string")
    if not isinstance(raw_assets, list):
        raise ReleaseParseError("Release 'assets' must be a list")

    return ReleaseDescriptor(
        name=name,
        id=release_id,
        published_at=published_at.strip(),
        assets=tuple(_parse_asset(entry) for entry in raw_assets),
    )


def _parse_asset(entry: Any) -> Asset:
    if not isinstance(entry, Mapping):
        raise ReleaseParseError("Release asset must be a JSON object")
    name = entry.get("name")
    url = entry.get("browser_download_url")
    if not isinstance(name, str) or not name:
        raise ReleaseParseError("Release asset 'name' must be a non-empty string")
    if not isinstance(url, str) or not url:
        raise ReleaseParseError(f"Release asset {name} has no download URL")
    return Asset(name=name, download_url=url)


__all__ = [
    "GitHubReleaseResolver",
    "ReleaseResolver",
    "SessionFactory",
    "parse_release",
    "user_agent",
]
