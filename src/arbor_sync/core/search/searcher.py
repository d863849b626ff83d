"""Search over the pre-built, sharded index published next to a tree.

Shards live at ``search/<lang>/<first char>/<two-char prefix>.json``. The index
is generated when content is published; it is never derived from the loaded
graph, so unloaded subtrees are searchable but never fetched by a search.
"""

import re
import string
import unicodedata
from typing import Any

from loguru import logger

from arbor_sync.errors import NotFound
from arbor_sync.models.node import SearchEntry
from arbor_sync.protocols import ApiProtocol

_SHARD_SUFFIXES = string.ascii_lowercase + string.digits


def clean_string(text: str | None) -> str:
    """Lowercase, strip accents, keep only ``[a-z0-9]`` and whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9\s]", "", without_marks)


def _to_entry(item: dict[str, Any]) -> SearchEntry:
    return SearchEntry(
        id=str(item.get("id", "")),
        name=item.get("n") or item.get("name") or "",
        kind=item.get("t") or item.get("type") or "",
        icon=item.get("i") or item.get("icon") or "",
        description=item.get("d") or item.get("description") or "",
        path=item.get("p") or item.get("path") or "",
        lang=item.get("l") or item.get("lang") or "",
    )


class SearchIndex:
    """Lazily loaded shards of one source's search index, cached per (lang, prefix)."""

    def __init__(self, api: ApiProtocol | None, base_url: str) -> None:
        self.api = api
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._shards: dict[str, list[SearchEntry]] = {}

    def invalidate(self) -> None:
        self._shards.clear()

    def preload(self, lang: str, items: list[dict[str, Any]]) -> None:
        """Seed shards from an already loaded flat index.

        An entry lands in the shard of every two-char word prefix of its name,
        the same way published shards are generated.
        """
        for item in items:
            entry = _to_entry(item)
            prefixes = {w[:2] for w in clean_string(entry.name).split() if len(w) >= 2}
            for prefix in sorted(prefixes):
                self._shards.setdefault(f"{lang}_{prefix}", []).append(entry)

    def entries_for(self, lang: str) -> list[SearchEntry]:
        """Every entry already loaded for ``lang``, deduplicated by id."""
        seen: dict[str, SearchEntry] = {}
        for key, entries in self._shards.items():
            if key.startswith(f"{lang}_"):
                for entry in entries:
                    seen.setdefault(entry.id, entry)
        return list(seen.values())

    def _shard(self, lang: str, prefix: str) -> list[SearchEntry]:
        key = f"{lang}_{prefix}"
        if key in self._shards:
            return self._shards[key]
        if self.api is None:
            return []
        url = f"{self.base_url}search/{lang}/{prefix[0]}/{prefix}.json"
        try:
            shard = self.api.fetch_url(url) or []
        except NotFound:
            logger.debug("No search shard at {}", url)
            shard = []
        entries = [_to_entry(item) for item in shard]
        self._shards[key] = entries
        return entries

    def search(self, query: str, lang: str) -> list[SearchEntry]:
        """Entries whose name or description contains the query (accent-insensitive)."""
        q = clean_string(query).strip()
        if len(q) < 2:
            return []
        prefix = q[:2]
        if " " in prefix:
            return []
        return [
            e
            for e in self._shard(lang, prefix)
            if q in clean_string(e.name) or q in clean_string(e.description)
        ]

    def search_broad(self, char: str, lang: str) -> list[SearchEntry]:
        """Entries with any word starting with a single character."""
        c = clean_string(char)
        if len(c) != 1 or c.isspace():
            return []
        seen: set[str] = set()
        results: list[SearchEntry] = []
        for suffix in _SHARD_SUFFIXES:
            for entry in self._shard(lang, c + suffix):
                if entry.id in seen:
                    continue
                words = clean_string(entry.name).split()
                if any(w.startswith(c) for w in words):
                    seen.add(entry.id)
                    results.append(entry)
        return results
