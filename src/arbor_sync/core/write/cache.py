"""Caches scoped to the lifetime of one active source."""

from dataclasses import dataclass, field
from urllib.parse import urlparse

from loguru import logger

from arbor_sync.errors import NotFound
from arbor_sync.models.node import GovernanceRule, RepositoryCoordinates, Source, TreeEntry


def parse_repository(url: str) -> RepositoryCoordinates | None:
    """Derive owner/repo from a source URL.

    Understands ``raw.githubusercontent.com/OWNER/REPO/...``,
    ``OWNER.github.io/REPO/...`` and ``github.com/OWNER/REPO/...``.
    """
    parsed = urlparse(url)
    host = parsed.hostname or ""
    parts = [p for p in parsed.path.split("/") if p]

    if host in ("raw.githubusercontent.com", "github.com") and len(parts) >= 2:
        return RepositoryCoordinates(owner=parts[0], repo=parts[1].removesuffix(".git"))
    if host.endswith(".github.io") and parts:
        return RepositoryCoordinates(owner=host.split(".")[0], repo=parts[0])
    return None


class RepositoryCoordinatesCache:
    """Resolves owner/repo from the source URL once."""

    def __init__(self, source: Source) -> None:
        self.source = source
        self._value: RepositoryCoordinates | None = None

    def get(self) -> RepositoryCoordinates:
        if self._value is None:
            coords = parse_repository(self.source.url)
            if coords is None:
                msg = f"Could not determine repository from source URL {self.source.url!r}"
                raise NotFound(msg)
            self._value = coords
        return self._value

    def invalidate(self) -> None:
        self._value = None


class TreeListingCache:
    """The full recursive listing of one branch head.

    Writes never patch it; callers invalidate or force a refresh.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[TreeEntry]] = {}

    def get(self, branch: str) -> list[TreeEntry] | None:
        return self._entries.get(branch)

    def put(self, branch: str, entries: list[TreeEntry]) -> None:
        self._entries[branch] = entries

    def invalidate(self) -> None:
        self._entries.clear()


@dataclass
class SourceCaches:
    """Every cache bound to one source. Invalidate all of them on a source switch."""

    source: Source
    repository: RepositoryCoordinatesCache = field(init=False)
    tree: TreeListingCache = field(default_factory=TreeListingCache)
    governance: list[GovernanceRule] | None = None

    def __post_init__(self) -> None:
        self.repository = RepositoryCoordinatesCache(self.source)

    def invalidate(self) -> None:
        logger.debug("Invalidating caches for source {!r}", self.source.id)
        self.repository.invalidate()
        self.tree.invalidate()
        self.governance = None
