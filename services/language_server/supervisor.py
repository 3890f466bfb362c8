"""Lifecycle management for the language server process."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Tuple

from services.language_server.constants import SHUTDOWN_TIMEOUT
from services.language_server.models import ProcessLaunchError, ServerState


_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Executable:
    """Command used to start the server."""

    command: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ServerOptions:
    run: Executable
    debug: Executable


def server_options(path: str) -> ServerOptions:
    """Return launch options; run and debug share the same executable."""

    executable = Executable(command=path)
    return ServerOptions(run=executable, debug=executable)


class ServerHandle(Protocol):
    async def shutdown(self) -> None:
        """Ask the server to exit and return once it has exited."""


class ServerLauncher(Protocol):
    async def launch(self, path: str) -> ServerHandle:
        """Start the server at ``path`` and return once it is ready."""


class SubprocessHandle:
    """A running server process speaking over stdin/stdout."""

    def __init__(self, process: asyncio.subprocess.Process, *, shutdown_timeout: float) -> None:
        self.process = process
        self._shutdown_timeout = shutdown_timeout

    async def shutdown(self) -> None:
        process = self.process
        if process.returncode is not None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if await self._wait(self._shutdown_timeout):
            return

        _LOGGER.debug("Sending SIGTERM to language server (PID %s)", process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            return
        if await self._wait(self._shutdown_timeout):
            return

        _LOGGER.warning("Killing stubborn language server process (PID %s)", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    async def _wait(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self.process.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class SubprocessLauncher:
    """Launch the server as a child process with piped stdio."""

    def __init__(
        self,
        *,
        debug: bool = False,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        startup_grace: float = 0.1,
    ) -> None:
        self._debug = debug
        self._shutdown_timeout = shutdown_timeout
        self._startup_grace = startup_grace

    async def launch(self, path: str) -> SubprocessHandle:
        options = server_options(path)
        executable = options.debug if self._debug else options.run
        try:
            process = await asyncio.create_subprocess_exec(
                executable.command,
                *executable.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessLaunchError(f"Failed to launch language server {path}: {exc}") from exc

        await asyncio.sleep(self._startup_grace)
        if process.returncode is not None:
            raise ProcessLaunchError(
                f"Language server {path} exited immediately with code {process.returncode}"
            )
        _LOGGER.info("Language server started (PID %s)", process.pid)
        return SubprocessHandle(process, shutdown_timeout=self._shutdown_timeout)


class ServerSupervisor:
    """Own the single language server process and order its transitions.

    ``start``, ``stop`` and ``restart`` may be called concurrently from
    several commands.  Each call inspects the current state before
    awaiting anything, so an in-flight transition is joined rather than
    duplicated and a start never overlaps a stop that has not finished.
    """

    def __init__(self, launcher: ServerLauncher | None = None) -> None:
        self._launcher = launcher or SubprocessLauncher()
        self._state = ServerState.STOPPED
        self._handle: ServerHandle | None = None
        self._path: str | None = None
        self._transition: asyncio.Future[None] | None = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def handle(self) -> ServerHandle | None:
        return self._handle

    async def start(self, path: str | None = None) -> None:
        while self._state is ServerState.STOPPING:
            await self._join()
        if self._state is ServerState.STARTING:
            await self._join()
            return
        if self._state is ServerState.RUNNING:
            _LOGGER.debug("Language server already running")
            return

        target = path or self._path
        if not target:
            raise ProcessLaunchError("No language server path has been resolved")

        self._path = target
        transition = self._begin(ServerState.STARTING)
        _LOGGER.info("Starting language server %s", target)
        try:
            self._handle = await self._launcher.launch(target)
        except ProcessLaunchError:
            self._state = ServerState.FAILED
            _LOGGER.error("Language server failed to start", exc_info=True)
            raise
        except OSError as exc:
            self._state = ServerState.FAILED
            _LOGGER.error("Language server failed to start: %s", exc)
            raise ProcessLaunchError(f"Failed to launch language server {target}: {exc}") from exc
        else:
            self._state = ServerState.RUNNING
        finally:
            if self._state is ServerState.STARTING:
                # Cancelled mid-launch.
                self._state = ServerState.FAILED
            self._finish(transition)

    async def stop(self) -> None:
        if self._state is ServerState.STARTING:
            await self._join()
        if self._state is ServerState.STOPPING:
            await self._join()
            return
        if self._state is not ServerState.RUNNING:
            return

        handle = self._handle
        transition = self._begin(ServerState.STOPPING)
        _LOGGER.info("Stopping language server")
        try:
            if handle is not None:
                await handle.shutdown()
        except Exception as exc:
            self._state = ServerState.FAILED
            raise ProcessLaunchError(f"Language server did not shut down cleanly: {exc}") from exc
        else:
            self._state = ServerState.STOPPED
            _LOGGER.info("Language server stopped")
        finally:
            if self._state is ServerState.STOPPING:
                self._state = ServerState.FAILED
            self._handle = None
            self._finish(transition)

    async def restart(self, path: str | None = None) -> None:
        """Stop the server, then start it again once the stop has completed."""

        target = path or self._path
        if not target:
            raise ProcessLaunchError("No language server path has been resolved")
        _LOGGER.info("Requested server restart")
        await self.stop()
        _LOGGER.info("Restarting")
        await self.start(target)

    def _begin(self, state: ServerState) -> asyncio.Future[None]:
        self._state = state
        transition: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._transition = transition
        return transition

    def _finish(self, transition: asyncio.Future[None]) -> None:
        if not transition.done():
            transition.set_result(None)
        if self._transition is transition:
            self._transition = None

    async def _join(self) -> None:
        transition = self._transition
        if transition is not None:
            await asyncio.shield(transition)


__all__ = [
    "Executable",
    "ServerHandle",
    "ServerLauncher",
    "ServerOptions",
    "ServerSupervisor",
    "SubprocessHandle",
    "SubprocessLauncher",
    "server_options",
]
