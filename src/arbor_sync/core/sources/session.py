"""Everything bound to the active source, rebuilt from zero on every switch."""

from pathlib import Path

from loguru import logger

from arbor_sync.config import CONTENT_ROOT, DEFAULT_BRANCH
from arbor_sync.core.content.sources import LocalStore, PublishedContentSource, RepositoryContentSource
from arbor_sync.core.navigation.commands import CommandBus
from arbor_sync.core.navigation.navigator import Navigator
from arbor_sync.core.search.searcher import SearchIndex
from arbor_sync.core.write.cache import SourceCaches
from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.errors import NotFound
from arbor_sync.models.node import Source
from arbor_sync.protocols import ApiProtocol, WriteTarget


class SourceSession:
    """Caches, mutation service, navigator and search index of one source.

    ``switch`` discards all of them; nothing is carried across sources.
    """

    def __init__(
        self,
        api: ApiProtocol,
        source: Source,
        *,
        mode: str = "repository",
        lang: str = "EN",
        branch: str = DEFAULT_BRANCH,
        principal: str | None = None,
        content_root: str = CONTENT_ROOT,
        local_path: Path | None = None,
    ) -> None:
        self.api = api
        self.mode = mode
        self.lang = lang
        self.branch = branch
        self.principal = principal
        self.content_root = content_root
        self.local_path = local_path
        self._open(source)

    def _open(self, source: Source) -> None:
        self.source = source
        self.caches = SourceCaches(source)
        self.service: RemoteMutationService | None = None
        self.local: LocalStore | None = None
        base_url = source.url[: source.url.rfind("/") + 1]
        self.search = SearchIndex(None if source.is_local else self.api, base_url)

        if source.is_local:
            self.local = LocalStore(source, self.local_path)
            self.navigator = Navigator(self.local, self.local.root_node(self.content_root))
        elif self.mode == "published":
            published = PublishedContentSource(self.api, source)
            self.navigator = Navigator(published, published.load_root(self.lang))
        else:
            self.service = RemoteMutationService(
                self.api,
                source,
                caches=self.caches,
                branch=self.branch,
                principal=self.principal,
            )
            repo_source = RepositoryContentSource(self.service, content_root=self.content_root)
            self.navigator = Navigator(repo_source, repo_source.root_node())
        self.commands = CommandBus(self.navigator)
        logger.debug("Opened source {!r} ({})", source.id, self.mode)

    @property
    def writer(self) -> WriteTarget:
        """The write target of this source: remote service or local store."""
        if self.service is not None:
            return self.service
        if self.local is not None:
            return self.local
        msg = f"Source {self.source.name!r} is read-only in {self.mode!r} mode"
        raise NotFound(msg)

    def switch(self, source: Source) -> None:
        """Drop every cache and the whole node graph, then bootstrap ``source``."""
        self.caches.invalidate()
        self.search.invalidate()
        self._open(source)
