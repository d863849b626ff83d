"""Registry of content sources: the official default, community additions, releases."""

import json
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

from loguru import logger

from arbor_sync.config import DEFAULT_SOURCES, MANIFEST_NAME, OFFICIAL_DOMAINS, SOURCES_FILE
from arbor_sync.errors import NetworkError, NotFound
from arbor_sync.models.node import Source, SourceKind
from arbor_sync.protocols import ApiProtocol


def _source_from_dict(data: dict[str, Any]) -> Source:
    return Source(
        id=data["id"],
        name=data.get("name", ""),
        url=data["url"],
        trusted=bool(data.get("trusted", False)),
        kind=SourceKind(data.get("kind", SourceKind.COMMUNITY)),
    )


def _source_to_dict(source: Source) -> dict[str, Any]:
    return {
        "id": source.id,
        "name": source.name,
        "url": source.url,
        "trusted": source.trusted,
        "kind": str(source.kind),
    }


def is_url_trusted(url: str) -> bool:
    """Whether the URL is served from one of the official domains."""
    return (urlparse(url).hostname or "") in OFFICIAL_DOMAINS


class SourceManager:
    """Known sources and which one is active, persisted as JSON."""

    def __init__(self, store_path: Path | None = SOURCES_FILE) -> None:
        self.store_path = store_path
        self.defaults = [_source_from_dict(d) for d in DEFAULT_SOURCES]
        self.community_sources: list[Source] = []
        self.active_id: str | None = None
        self.available_releases: list[Source] = []
        self._load()

    def _load(self) -> None:
        if self.store_path is None or not self.store_path.exists():
            return
        try:
            data = json.loads(self.store_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable sources file {}", self.store_path)
            return
        self.community_sources = [_source_from_dict(s) for s in data.get("sources", [])]
        self.active_id = data.get("active")

    def _save(self) -> None:
        if self.store_path is None:
            return
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "sources": [_source_to_dict(s) for s in self.community_sources],
            "active": self.active_id,
        }
        self.store_path.write_text(json.dumps(data, sort_keys=True, indent=4) + "\n", encoding="utf-8")

    @property
    def sources(self) -> list[Source]:
        default_ids = {s.id for s in self.defaults}
        return self.defaults + [s for s in self.community_sources if s.id not in default_ids]

    def get(self, source_id: str) -> Source:
        for source in self.sources + self.available_releases:
            if source.id == source_id:
                return source
        msg = f"Unknown source {source_id!r}"
        raise NotFound(msg)

    @property
    def active(self) -> Source:
        if self.active_id:
            try:
                return self.get(self.active_id)
            except NotFound:
                logger.warning("Active source {!r} is gone, using the default", self.active_id)
        return self.defaults[0]

    def activate(self, source_id: str) -> Source:
        source = self.get(source_id)
        self.active_id = source.id
        self._save()
        return source

    def add_community_source(self, url: str, name: str | None = None) -> Source:
        source = Source(
            id=str(uuid.uuid4()),
            name=name or urlparse(url).hostname or "New Tree",
            url=url,
            trusted=is_url_trusted(url),
            kind=SourceKind.LOCAL if url.startswith("local://") else SourceKind.COMMUNITY,
        )
        self.community_sources.append(source)
        self._save()
        logger.info("Added source {} ({})", source.name, source.url)
        return source

    def remove_community_source(self, source_id: str) -> Source:
        """Forget a community source; returns the source that is active afterwards."""
        self.community_sources = [s for s in self.community_sources if s.id != source_id]
        if self.active_id == source_id:
            self.active_id = self.defaults[0].id
        self._save()
        return self.active

    def discover_manifest(self, api: ApiProtocol, source_url: str | None = None) -> list[Source]:
        """Find the release manifest next to a source and list its versions.

        Tries the sibling ``arbor-index.json``, the parent folder, and the
        ``/data/`` root, in that order.
        """
        url = source_url or self.active.url
        candidates = [urljoin(url, MANIFEST_NAME), urljoin(url, "../" + MANIFEST_NAME)]
        lowered = url.lower()
        if "/data/" in lowered:
            root = url[: lowered.rfind("/data/")]
            candidates.append(f"{root}/data/{MANIFEST_NAME}")

        for candidate in dict.fromkeys(candidates):
            try:
                manifest = api.fetch_url(candidate)
            except (NotFound, NetworkError):
                continue
            if not isinstance(manifest, dict):
                continue
            self.available_releases = self._versions(manifest, candidate)
            logger.debug("Manifest {} lists {} versions", candidate, len(self.available_releases))
            return self.available_releases

        self.available_releases = []
        return []

    def _versions(self, manifest: dict[str, Any], manifest_url: str) -> list[Source]:
        def rebase(u: str) -> str:
            return urljoin(manifest_url, u) if u.startswith("./") else u

        versions: list[Source] = []
        rolling = manifest.get("rolling")
        if rolling:
            versions.append(self._release(rolling, rebase, SourceKind.ROLLING))
        for release in manifest.get("releases") or []:
            versions.append(self._release(release, rebase, SourceKind.ARCHIVE))
        return versions

    @staticmethod
    def _release(data: dict[str, Any], rebase: Callable[[str], str], kind: SourceKind) -> Source:
        url = rebase(data["url"])
        name = data.get("name") or data.get("year") or url
        return Source(
            id=data.get("id") or f"{kind}-{name}",
            name=str(name),
            url=url,
            trusted=is_url_trusted(url),
            kind=kind,
        )
