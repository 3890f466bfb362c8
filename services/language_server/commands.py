"""Operator commands exposed by the host integration."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Protocol

from services.language_server.installation_planner import InstallationPlanner, InstallContext
from services.language_server.models import DownloadProgress, LanguageServerError
from services.language_server.supervisor import ServerSupervisor


_LOGGER = logging.getLogger(__name__)

RESTART_COMMAND = "numscript.restart-server"
DOWNLOAD_COMMAND = "numscript.download-server"

Command = Callable[[], Awaitable[bool]]


class Host(Protocol):
    """Collaborators supplied by the editor or console hosting the server."""

    async def confirm(self, message: str) -> bool:
        """Ask the user a yes/no question."""

    def info(self, message: str) -> None:
        """Show an informational notification."""

    def error(self, message: str) -> None:
        """Show an error notification."""

    def report_progress(self, progress: DownloadProgress) -> None:
        """Receive download progress events."""


class ServerCommands:
    """Restart and update commands; failures become notifications."""

    def __init__(
        self,
        planner: InstallationPlanner,
        supervisor: ServerSupervisor,
        host: Host,
        context: InstallContext,
    ) -> None:
        self._planner = planner
        self._supervisor = supervisor
        self._host = host
        self._context = context

    async def restart_server(self) -> bool:
        try:
            await self._supervisor.restart()
        except LanguageServerError as exc:
            self._report("Could not restart the language server", exc)
            return False
        self._host.info("Language server restarted")
        return True

    async def download_latest(self) -> bool:
        try:
            path = await self._planner.force_refresh(self._context)
            await self._supervisor.restart(path)
        except LanguageServerError as exc:
            self._report("Could not update the language server", exc)
            return False
        self._host.info(f"Language server updated: {path}")
        return True

    def registry(self) -> Dict[str, Command]:
        return {
            RESTART_COMMAND: self.restart_server,
            DOWNLOAD_COMMAND: self.download_latest,
        }

    def _report(self, action: str, exc: LanguageServerError) -> None:
        _LOGGER.error("%s: %s", action, exc)
        self._host.error(f"{action}: {exc}")


__all__ = [
    "Command",
    "DOWNLOAD_COMMAND",
    "Host",
    "RESTART_COMMAND",
    "ServerCommands",
]
