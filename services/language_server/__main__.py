"""Console host for resolving, updating and running the language server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from app.config import LanguageServerConfig, get_language_server_config, load_app_config
from services.language_server.builder import activate, build_planner, deactivate
from services.language_server.installation_planner import InstallContext
from services.language_server.models import DownloadProgress, LanguageServerError
from services.language_server.supervisor import SubprocessHandle
from shared.logging_config import LogVerbosity, ensure_app_logging, set_file_log_verbosity


_LOGGER = logging.getLogger(__name__)

_YES = {"y", "yes"}


class ConsoleHost:
    """Prompt on stdin and report notifications on stderr."""

    def __init__(self, *, assume_yes: bool = False) -> None:
        self._assume_yes = assume_yes

    async def confirm(self, message: str) -> bool:
        if self._assume_yes:
            return True
        answer = await asyncio.to_thread(input, f"{message} [y/N] ")
        return answer.strip().lower() in _YES

    def info(self, message: str) -> None:
        print(message, file=sys.stderr)

    def error(self, message: str) -> None:
        print(f"error: {message}", file=sys.stderr)

    def report_progress(self, progress: DownloadProgress) -> None:
        fraction = progress.fraction
        if fraction is None:
            _LOGGER.debug("Downloaded %s bytes", progress.bytes_read)
        else:
            _LOGGER.debug("Downloaded %s / %s bytes (%.0f%%)", progress.bytes_read, progress.total_bytes, fraction * 100)


def _context(config: LanguageServerConfig, host: ConsoleHost) -> InstallContext:
    return InstallContext(
        storage_dir=config.storage_dir,
        consent=host.confirm,
        on_progress=host.report_progress,
    )


async def _resolve(config: LanguageServerConfig, host: ConsoleHost) -> int:
    path = await build_planner(config).resolve_path(config.server_path, _context(config, host))
    print(path)
    return 0


async def _download_latest(config: LanguageServerConfig, host: ConsoleHost) -> int:
    path = await build_planner(config).force_refresh(_context(config, host))
    print(path)
    return 0


async def _run(config: LanguageServerConfig, host: ConsoleHost) -> int:
    activation = await activate(host, config)
    if activation.error is not None:
        return 1
    try:
        handle = activation.supervisor.handle
        if isinstance(handle, SubprocessHandle):
            code = await handle.process.wait()
            _LOGGER.info("Language server exited with code %s", code)
            return 0 if code == 0 else 1
        await asyncio.Event().wait()
        return 0
    finally:
        await deactivate(activation)


_COMMANDS = {
    "resolve": _resolve,
    "download-latest": _download_latest,
    "run": _run,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m services.language_server", description=__doc__)
    parser.add_argument("command", choices=sorted(_COMMANDS), help="Action to perform.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to an app.json file overriding the bundled configuration.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Download without asking for confirmation.",
    )
    parser.add_argument(
        "--verbosity",
        choices=[level.value for level in LogVerbosity],
        default=None,
        help="Minimum severity written to the log file.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    ensure_app_logging()
    if args.verbosity:
        set_file_log_verbosity(args.verbosity)

    config = load_app_config(args.config).language_server if args.config else get_language_server_config()
    host = ConsoleHost(assume_yes=args.yes)
    try:
        return asyncio.run(_COMMANDS[args.command](config, host))
    except LanguageServerError as exc:
        host.error(str(exc))
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
