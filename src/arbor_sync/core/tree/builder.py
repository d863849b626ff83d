"""Rebuild a node hierarchy from a flat remote listing."""

from collections.abc import Iterable, Iterator, Sequence

from arbor_sync.models.node import (
    BranchNode,
    LeafNode,
    LoadState,
    Node,
    NodeId,
    TreeEntry,
)

DEFAULT_ROOT = NodeId.root("tree")


def _join(base: str, rel: str) -> str:
    return f"{base.rstrip('/')}/{rel}" if base else rel


def _node_for(entry: TreeEntry, base_id: NodeId, base_path: str) -> Node:
    segments = [s for s in entry.path.split("/") if s]
    node_id = base_id
    for segment in segments:
        node_id = node_id.child(segment)
    name = segments[-1] if segments else entry.path
    remote_path = _join(base_path, entry.path)

    if entry.is_directory:
        return BranchNode(
            id=node_id,
            name=name,
            kind="branch",
            remote_path=remote_path,
            api_path=remote_path,
        )
    return LeafNode(
        id=node_id,
        name=name.removesuffix(".md"),
        kind="leaf",
        remote_path=remote_path,
    )


def _sort_key(node: Node) -> tuple[int, str]:
    return (1 if node.is_leaf else 0, node.remote_path or "")


def _sort_recursive(nodes: list[Node]) -> None:
    nodes.sort(key=_sort_key)
    for node in nodes:
        if isinstance(node, BranchNode):
            _sort_recursive(node.children)


def build(
    entries: Iterable[TreeEntry],
    *,
    base_id: NodeId = DEFAULT_ROOT,
    base_path: str = "",
) -> list[Node]:
    """Turn a flat listing into the list of root-level nodes.

    Entry paths are relative to ``base_path``; node ids extend ``base_id`` with
    every path segment. An entry whose parent is not in the listing is promoted
    to the root level rather than dropped. Duplicate paths: last one wins.

    Returns:
        Root-level nodes; directories first, then files, each ordered by path,
        recursively.
    """
    by_path: dict[str, Node] = {}
    order: list[str] = []
    for entry in entries:
        key = entry.path.strip("/")
        if key not in by_path:
            order.append(key)
        by_path[key] = _node_for(entry, base_id, base_path)

    roots: list[Node] = []
    for key in order:
        node = by_path[key]
        parent_key, sep, _name = key.rpartition("/")
        parent = by_path.get(parent_key) if sep else None
        if isinstance(parent, BranchNode):
            node.parent_id = parent.id
            parent.children.append(node)
            parent.child_load_state = LoadState.LOADED
        else:
            node.parent_id = base_id if sep == "" else None
            roots.append(node)

    _sort_recursive(roots)
    return roots


def flatten(nodes: Sequence[Node]) -> Iterator[tuple[int, Node]]:
    """Walk nodes pre-order, yielding (depth, node)."""
    todo: list[tuple[int, Node]] = [(0, n) for n in nodes]
    while todo:
        depth, node = todo.pop(0)
        yield depth, node
        if isinstance(node, BranchNode):
            todo = [(depth + 1, c) for c in node.children] + todo
