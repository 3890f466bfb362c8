"""Constants shared across the language server modules."""

from __future__ import annotations

GITHUB_REPO = "numary/numscript-ls"
API_URL = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"
GITHUB_ACCEPT_HEADER = "application/vnd.github.v3+json"

EXECUTABLE_NAME = "numscript-ls"
WINDOWS_EXECUTABLE_SUFFIX = ".exe"
ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".gz")

STATE_FILE_NAME = "installed.json"
TIMESTAMP_KEY = "serverTimestamp"
PATH_KEY = "serverPath"
STAGING_PREFIX = ".partial-"

REQUEST_TIMEOUT = 30.0
DOWNLOAD_TIMEOUT = 600.0
SHUTDOWN_TIMEOUT = 5.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024

BUILD_FROM_SOURCE_HINT = (
    "Your platform does not have prebuilt language server binaries yet, "
    f"you'll have to clone {GITHUB_REPO} and build the server yourself, "
    "then set the server path in the Numscript settings."
)
