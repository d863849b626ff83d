"""Configuration constants for arbor-sync."""

import os
from pathlib import Path
from typing import Any

# Environment variable with a GitHub token. Takes precedence over token files.
TOKEN_ENV_VAR = "ARBOR_GITHUB_TOKEN"

# API token location. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/arbor-sync-token.txt").expanduser(),
    Path("~/.config/secret/arbor-sync-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/arbor-token"),
]

GITHUB_API_URL: str = os.environ.get("GITHUB_API_URL", "https://api.github.com")

# Seconds before the transport gives up on a single request.
REQUEST_TIMEOUT: float = 30.0

# Primary line of history that direct commits go to and review requests target.
DEFAULT_BRANCH = "main"

# Folder in the repository holding the content tree.
CONTENT_ROOT = "content"

OWNERSHIP_FILE = ".github/CODEOWNERS"

# Name of the folder metadata file; it is never shown as a lesson.
FOLDER_META_FILE = "meta.json"

EXAM_LABEL_PREFIX = "Exam: "

OFFICIAL_DOMAINS: list[str] = [
    "treesys-org.github.io",
    "localhost",
    "127.0.0.1",
    "raw.githubusercontent.com",
]

DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "default-arbor",
        "name": "Arbor Knowledge (Official)",
        "url": "https://raw.githubusercontent.com/treesys-org/arbor-knowledge/main/data/data.json",
        "trusted": True,
        "kind": "rolling",
    },
]

# Community sources and the active source id are persisted here.
SOURCES_FILE: Path = Path("~/.config/arbor-sync/sources.json").expanduser()

MANIFEST_NAME = "arbor-index.json"


def resolve_token() -> str | None:
    """Return the GitHub token from the environment or the first token file found."""
    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token.strip()
    for token_path in API_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            pass
    return None


# Offline (local://) sources keep their files here, one JSON file per source.
LOCAL_STORE_DIR: Path = Path("~/.local/share/arbor-sync").expanduser()
