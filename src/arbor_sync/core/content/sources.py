"""Content sources the navigator loads subtrees and bodies from."""

import hashlib
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from loguru import logger

from arbor_sync.config import CONTENT_ROOT, FOLDER_META_FILE
from arbor_sync.core.governance.resolver import normalize_path
from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.errors import ConflictError, NetworkError, NotFound
from arbor_sync.models.node import (
    BranchNode,
    EntryType,
    FileContent,
    LeafNode,
    LoadState,
    Node,
    NodeId,
    Source,
    TreeEntry,
)
from arbor_sync.protocols import ApiProtocol


def _children_entries(entries: Sequence[TreeEntry], base: str) -> list[TreeEntry]:
    """Direct children of ``base`` with relative paths; folder meta files dropped."""
    cut = len(base) + 1 if base else 0
    out = []
    for entry in entries:
        rel = entry.path[cut:]
        if not rel or "/" in rel or rel == FOLDER_META_FILE:
            continue
        out.append(TreeEntry(path=rel, entry_type=entry.entry_type, version_token=entry.version_token))
    return out


class RepositoryContentSource:
    """Reads the content tree straight from the repository through the mutation service."""

    def __init__(self, service: RemoteMutationService, *, content_root: str = CONTENT_ROOT) -> None:
        self.service = service
        self.content_root = content_root

    def root_node(self) -> BranchNode:
        return BranchNode(
            id=NodeId.root(self.service.source.id),
            name=self.service.source.name,
            kind="root",
            remote_path=self.content_root,
            api_path=self.content_root,
        )

    def fetch_children(self, node: BranchNode, *, force: bool = False) -> list[TreeEntry]:
        base = node.api_path or node.remote_path or ""
        entries = self.service.list_children(base, force=force)
        return [e for e in entries if e.path != FOLDER_META_FILE]

    def fetch_body(self, node: LeafNode) -> str:
        if not node.remote_path:
            msg = f"Leaf {node.id} has no remote path"
            raise NotFound(msg)
        return self.service.read_file(node.remote_path).body


class PublishedContentSource:
    """Reads a published (pre-built) tree: ``data.json``, ``nodes/*.json``, ``content/*``."""

    def __init__(self, api: ApiProtocol, source: Source) -> None:
        self.api = api
        self.source = source
        self.base_url = source.url[: source.url.rfind("/") + 1]

    def load_root(self, lang: str = "EN") -> BranchNode:
        """Fetch the source's root document for ``lang``, falling back to the first language."""
        data = self.api.fetch_url(self.source.url)
        languages: dict[str, Any] = (data or {}).get("languages") or {}
        record = languages.get(lang) or next(iter(languages.values()), None)
        if record is None:
            msg = f"No valid content found in {self.source.name!r}"
            raise NotFound(msg)
        root = self._to_node(record, parent=None)
        if not isinstance(root, BranchNode):
            msg = f"Root of {self.source.name!r} is not a branch"
            raise NetworkError(msg)
        root.kind = "root"
        return root

    def _node_id(self, record: dict[str, Any], parent: NodeId | None) -> NodeId:
        raw = record.get("id")
        if isinstance(raw, str):
            try:
                parsed = NodeId.parse(raw)
            except ValueError:
                parsed = None
            if parsed is not None and parsed.parent() == parent:
                return parsed
        if parent is None:
            return NodeId.root(self.source.id)
        return parent.child(str(raw or record.get("name", "")))

    def _to_node(self, record: dict[str, Any], parent: NodeId | None) -> Node:
        node_id = self._node_id(record, parent)
        common: dict[str, Any] = {
            "id": node_id,
            "name": record.get("name", ""),
            "icon": record.get("icon", ""),
            "description": record.get("description", ""),
            "order": str(record.get("order", "")),
            "remote_path": record.get("sourcePath"),
            "parent_id": parent,
        }
        kind = record.get("type", "branch")
        if kind in ("leaf", "exam"):
            return LeafNode(
                **common, kind=kind, api_path=record.get("contentPath"), body=record.get("content")
            )

        node = BranchNode(**common, kind="root" if kind == "root" else "branch")
        node.api_path = record.get("apiPath")
        inline = record.get("children")
        if inline:
            node.children = [self._to_node(c, node_id) for c in inline]
            node.child_load_state = LoadState.LOADED
        elif not record.get("hasUnloadedChildren") and inline is not None:
            node.child_load_state = LoadState.LOADED
        return node

    def fetch_children(self, node: BranchNode, *, force: bool = False) -> list[Node]:
        if not node.api_path:
            return []
        records = self.api.fetch_url(f"{self.base_url}nodes/{node.api_path}.json") or []
        return [self._to_node(r, node.id) for r in records]

    def fetch_body(self, node: LeafNode) -> str:
        if not node.api_path:
            msg = f"Content missing for {node.name!r}"
            raise NotFound(msg)
        data = self.api.fetch_url(f"{self.base_url}content/{node.api_path}")
        return str((data or {}).get("content", ""))


def blob_token(body: str) -> str:
    """Version token for a body, computed like a git blob sha."""
    raw = body.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(raw) + raw).hexdigest()


class LocalStore:
    """Offline key-value store with the same write interface as the remote store.

    Files live in memory and are optionally persisted to a JSON file.
    """

    def __init__(self, source: Source, path: Path | None = None) -> None:
        self.source = source
        self.path = path
        self.files: dict[str, str] = {}
        if path is not None and path.exists():
            self.files = json.loads(path.read_text(encoding="utf-8"))

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.files, sort_keys=True, indent=4) + "\n", encoding="utf-8")

    def read_file(self, path: str) -> FileContent:
        key = normalize_path(path)
        if key not in self.files:
            msg = f"{key!r} not found in local store"
            raise NotFound(msg)
        body = self.files[key]
        return FileContent(body=body, version_token=blob_token(body))

    def write_file(
        self,
        path: str,
        body: str,
        message: str,
        version_token: str | None = None,
        *,
        branch: str | None = None,
    ) -> str:
        key = normalize_path(path)
        current = self.files.get(key)
        if current is not None and version_token != blob_token(current):
            msg = f"{key!r} changed since it was read"
            raise ConflictError(msg)
        if current is None and version_token:
            msg = f"{key!r} does not exist"
            raise NotFound(msg)
        self.files[key] = body
        self._persist()
        logger.debug("Local write {}: {}", key, message)
        return blob_token(body)

    def delete_file(self, path: str, version_token: str, message: str | None = None) -> None:
        key = normalize_path(path)
        current = self.read_file(key)
        if current.version_token != version_token:
            msg = f"{key!r} changed since it was read"
            raise ConflictError(msg)
        del self.files[key]
        self._persist()

    def list_tree(self, prefix: str = "", *, force: bool = False) -> list[TreeEntry]:
        base = normalize_path(prefix).rstrip("/")
        dirs: set[str] = set()
        entries: list[TreeEntry] = []
        for key, body in sorted(self.files.items()):
            parts = key.split("/")
            for i in range(1, len(parts)):
                dirs.add("/".join(parts[:i]))
            entries.append(TreeEntry(path=key, entry_type=EntryType.FILE, version_token=blob_token(body)))
        entries.extend(TreeEntry(path=d, entry_type=EntryType.DIRECTORY) for d in sorted(dirs))
        if not base:
            return entries
        return [e for e in entries if e.path == base or e.path.startswith(base + "/")]

    def root_node(self, content_root: str = CONTENT_ROOT) -> BranchNode:
        return BranchNode(
            id=NodeId.root(self.source.id),
            name=self.source.name,
            kind="root",
            remote_path=content_root,
            api_path=content_root,
        )

    def fetch_children(self, node: BranchNode, *, force: bool = False) -> list[TreeEntry]:
        base = normalize_path(node.api_path or "").rstrip("/")
        return _children_entries(self.list_tree(base), base)

    def fetch_body(self, node: LeafNode) -> str:
        return self.read_file(node.remote_path or "").body
