"""Wire the language server components together for a host."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from services.language_server.commands import Host, ServerCommands
from services.language_server.fetcher import ArtifactFetcher
from services.language_server.installation_planner import InstallationPlanner, InstallContext
from services.language_server.models import LanguageServerError
from services.language_server.providers import GitHubReleaseResolver, ReleaseResolver
from services.language_server.state import VersionStore
from services.language_server.supervisor import ServerLauncher, ServerSupervisor, SubprocessLauncher

if TYPE_CHECKING:
    from app.config import LanguageServerConfig


_LOGGER = logging.getLogger(__name__)


@dataclass
class Activation:
    """Everything created by :func:`activate`, handed to command handlers."""

    config: "LanguageServerConfig"
    planner: InstallationPlanner
    supervisor: ServerSupervisor
    commands: ServerCommands
    context: InstallContext
    server_path: str | None = None
    error: LanguageServerError | None = None


def build_planner(
    config: "LanguageServerConfig",
    *,
    resolver: ReleaseResolver | None = None,
    fetcher: ArtifactFetcher | None = None,
) -> InstallationPlanner:
    """Construct an :class:`InstallationPlanner` for ``config``."""

    resolver = resolver or GitHubReleaseResolver(config.release_url, timeout=config.request_timeout)
    fetcher = fetcher or ArtifactFetcher(
        executable_name=config.executable_name,
        timeout=config.download_timeout,
        chunk_size=config.chunk_size,
    )
    return InstallationPlanner(resolver, VersionStore(config.storage_dir), fetcher)


async def activate(
    host: Host,
    config: "LanguageServerConfig | None" = None,
    *,
    planner: InstallationPlanner | None = None,
    launcher: ServerLauncher | None = None,
) -> Activation:
    """Resolve the server path and start the server.

    Commands are created before resolution so that a failed resolution
    leaves the operator able to run ``download-latest`` later.  Errors are
    reported through ``host`` and recorded on the returned activation.
    """

    if config is None:
        from app.config import get_language_server_config

        config = get_language_server_config()

    planner = planner or build_planner(config)
    supervisor = ServerSupervisor(
        launcher or SubprocessLauncher(shutdown_timeout=config.shutdown_timeout)
    )
    context = InstallContext(
        storage_dir=config.storage_dir,
        consent=host.confirm,
        on_progress=host.report_progress,
    )
    commands = ServerCommands(planner, supervisor, host, context)
    activation = Activation(
        config=config,
        planner=planner,
        supervisor=supervisor,
        commands=commands,
        context=context,
    )

    try:
        activation.server_path = await planner.resolve_path(config.server_path, context)
        await supervisor.start(activation.server_path)
    except LanguageServerError as exc:
        _LOGGER.error("Language server activation failed: %s", exc)
        activation.error = exc
        host.error(f"Language server unavailable: {exc}")
    return activation


async def deactivate(activation: Activation | None) -> None:
    if activation is None:
        return
    await activation.supervisor.stop()


__all__ = ["Activation", "activate", "build_planner", "deactivate"]
