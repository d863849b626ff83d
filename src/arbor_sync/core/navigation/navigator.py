"""Lazy graph navigation: expand/collapse, deep links, leaf selection.

Most of the tree is unloaded at any time. A branch's children are fetched the
first time it is expanded; afterwards expanding is free. Within a parent at
most one branch is expanded (accordion): siblings fold before the target opens.
"""

from collections.abc import Iterator, Sequence

from loguru import logger

from arbor_sync.config import EXAM_LABEL_PREFIX
from arbor_sync.core.content.lesson import parse_lesson
from arbor_sync.core.tree.builder import build
from arbor_sync.errors import ArborError, NotFound
from arbor_sync.models.node import (
    BranchNode,
    LeafNode,
    LoadState,
    Node,
    NodeId,
    TreeEntry,
)
from arbor_sync.protocols import ContentSource


def _as_id(node_id: NodeId | str) -> NodeId:
    if isinstance(node_id, NodeId):
        return node_id
    try:
        return NodeId.parse(node_id)
    except ValueError as e:
        msg = f"No node with id {node_id!r}: {e}"
        raise NotFound(msg) from e


class Navigator:
    """Owns the live node graph of the active source plus preview/selection state."""

    def __init__(
        self,
        source: ContentSource,
        root: BranchNode,
        *,
        exam_label_prefix: str = EXAM_LABEL_PREFIX,
    ) -> None:
        self.source = source
        self.root = root
        self.exam_label_prefix = exam_label_prefix
        self.preview_node: LeafNode | None = None
        self.selected_node: LeafNode | None = None
        self.path: list[Node] = [root]
        self.last_error: str | None = None
        self.fetch_count = 0
        self._index: dict[NodeId, Node] = {}
        self._register(root)

    # --- Lookup ---

    def _register(self, node: Node) -> None:
        self._index[node.id] = node
        if isinstance(node, BranchNode):
            for child in node.children:
                self._register(child)

    def _unregister_children(self, node: BranchNode) -> None:
        for child in node.children:
            self._index.pop(child.id, None)
            if isinstance(child, BranchNode):
                self._unregister_children(child)

    def find(self, node_id: NodeId | str) -> Node | None:
        """Return the node if it is in memory."""
        return self._index.get(_as_id(node_id))

    def require(self, node_id: NodeId | str) -> Node:
        node = self.find(node_id)
        if node is None:
            msg = f"Node {node_id} is not loaded"
            raise NotFound(msg)
        return node

    def _require_branch(self, node_id: NodeId | str) -> BranchNode:
        node = self.require(node_id)
        if not isinstance(node, BranchNode):
            msg = f"Node {node_id} is a {node.kind}, not a branch"
            raise ValueError(msg)
        return node

    def _require_leaf(self, node_id: NodeId | str) -> LeafNode:
        node = self.require(node_id)
        if not isinstance(node, LeafNode):
            msg = f"Node {node_id} is a {node.kind}, not a leaf"
            raise ValueError(msg)
        return node

    def breadcrumbs(self, node_id: NodeId | str) -> list[Node]:
        """The node and its in-memory ancestors, root first."""
        trail: list[Node] = []
        node = self.find(node_id)
        while node is not None:
            trail.append(node)
            node = self.find(node.parent_id) if node.parent_id else None
        trail.reverse()
        return trail

    def walk(self) -> Iterator[Node]:
        """Every in-memory node, pre-order."""
        todo: list[Node] = [self.root]
        while todo:
            node = todo.pop(0)
            yield node
            if isinstance(node, BranchNode):
                todo = list(node.children) + todo

    # --- Loading ---

    def _materialize(
        self, parent: BranchNode, fetched: Sequence[Node] | Sequence[TreeEntry]
    ) -> list[Node]:
        if fetched and isinstance(fetched[0], TreeEntry):
            entries = [e for e in fetched if isinstance(e, TreeEntry)]
            return build(entries, base_id=parent.id, base_path=parent.api_path or "")
        return [n for n in fetched if not isinstance(n, TreeEntry)]

    def _attach(self, parent: BranchNode, children: list[Node]) -> None:
        self._unregister_children(parent)
        prefix = self.exam_label_prefix
        for child in children:
            child.parent_id = parent.id
            if child.kind == "exam" and prefix and not child.name.startswith(prefix):
                child.name = prefix + child.name
        parent.children = children
        for child in children:
            self._register(child)

    def _fetch(self, node: BranchNode, *, force: bool = False) -> list[Node]:
        self.fetch_count += 1
        logger.debug("Fetching children of {}", node.id)
        try:
            fetched = self.source.fetch_children(node, force=force)
        except ArborError as e:
            self.last_error = f"Failed to load children of {node.name!r}: {e}"
            raise
        return self._materialize(node, fetched)

    def _load_children(self, node: BranchNode) -> None:
        node.child_load_state = LoadState.LOADING
        try:
            children = self._fetch(node)
        except ArborError:
            node.child_load_state = LoadState.UNLOADED
            node.expanded = False
            raise
        self._attach(node, children)
        node.child_load_state = LoadState.LOADED
        if not children:
            logger.debug("{} is empty", node.id)

    def refresh(self, node_id: NodeId | str) -> BranchNode:
        """Re-fetch a branch's children after a remote change.

        A loaded branch stays loaded; if the fetch fails its previous children
        are kept.
        """
        node = self._require_branch(node_id)
        if node.child_load_state is not LoadState.LOADED:
            self._load_children(node)
            return node
        children = self._fetch(node, force=True)
        self._attach(node, children)
        for attr in ("preview_node", "selected_node"):
            current = getattr(self, attr)
            if current is not None and self.find(current.id) is not current:
                setattr(self, attr, None)
        return node

    def load_body(self, node_id: NodeId | str) -> LeafNode:
        """Fetch a leaf's body once and apply its header metadata."""
        leaf = self._require_leaf(node_id)
        if leaf.body is not None:
            return leaf
        try:
            text = self.source.fetch_body(leaf)
        except ArborError as e:
            self.last_error = f"Content missing for {leaf.name!r}: {e}"
            raise
        meta, _body = parse_lesson(text)
        if meta.is_exam and leaf.kind != "exam":
            leaf.kind = "exam"
            if self.exam_label_prefix and not leaf.name.startswith(self.exam_label_prefix):
                leaf.name = self.exam_label_prefix + leaf.name
        if meta.title and leaf.kind == "leaf":
            leaf.name = meta.title
        leaf.icon = leaf.icon or meta.icon
        leaf.description = leaf.description or meta.description
        leaf.body = text
        return leaf

    # --- Expand / collapse ---

    def _collapse_recursively(self, node: BranchNode) -> None:
        node.expanded = False
        for child in node.children:
            if isinstance(child, BranchNode):
                self._collapse_recursively(child)

    def _collapse_siblings(self, node: Node) -> None:
        parent = self.find(node.parent_id) if node.parent_id else None
        if not isinstance(parent, BranchNode):
            return
        for sibling in parent.children:
            if sibling is not node and isinstance(sibling, BranchNode) and sibling.expanded:
                self._collapse_recursively(sibling)

    def expand(self, node_id: NodeId | str) -> BranchNode:
        """Expand a branch, fetching its children the first time.

        On a failed fetch the branch stays unloaded and collapsed and the error
        propagates.
        """
        node = self._require_branch(node_id)
        if node.child_load_state is LoadState.UNLOADED:
            self._load_children(node)
        self._collapse_siblings(node)
        node.expanded = True
        self.path = self.breadcrumbs(node.id)
        return node

    def collapse(self, node_id: NodeId | str) -> BranchNode:
        """Collapse a branch and everything beneath it."""
        node = self._require_branch(node_id)
        self._collapse_recursively(node)
        return node

    def toggle(self, node_id: NodeId | str) -> Node:
        """Click semantics: branches open/close, leaves go preview -> full display."""
        node = self.require(node_id)
        self.path = self.breadcrumbs(node.id)
        if isinstance(node, LeafNode):
            self._collapse_siblings(node)
            if self.preview_node is node:
                return self.select(node.id)
            self.preview_node, self.selected_node = node, None
            return node

        self.preview_node, self.selected_node = None, None
        if node.expanded:
            return self.collapse(node.id)
        return self.expand(node.id)

    def select(self, node_id: NodeId | str) -> LeafNode:
        """Show a leaf in full display, loading its body. Clears any preview."""
        leaf = self.load_body(node_id)
        self.preview_node, self.selected_node = None, leaf
        self.path = self.breadcrumbs(leaf.id)
        return leaf

    def close_content(self) -> None:
        self.preview_node, self.selected_node = None, None

    # --- Deep links ---

    def _deepest_loaded_ancestor(self, target: NodeId) -> NodeId:
        current: NodeId | None = target
        while current is not None and self.find(current) is None:
            current = current.parent()
        if current is None:
            msg = f"Node {target} does not belong to this tree"
            raise NotFound(msg)
        return current

    def navigate_to(self, target_id: NodeId | str) -> Node:
        """Reveal a node that may not be loaded yet.

        The ancestry encoded in the id gives every ancestor; each one is expanded
        from the root down, fetching only the ones that are still unloaded. The
        target branch is then expanded, or the target leaf previewed.
        """
        target = _as_id(target_id)
        anchor = self._deepest_loaded_ancestor(target)
        logger.debug("Navigating to {} from loaded ancestor {}", target, anchor)

        for ancestor_id in target.ancestors():
            ancestor = self.find(ancestor_id)
            if ancestor is None:
                msg = f"Node {ancestor_id} not found while navigating to {target}"
                raise NotFound(msg)
            if not isinstance(ancestor, BranchNode):
                msg = f"Node {ancestor_id} is a {ancestor.kind} and has no children"
                raise NotFound(msg)
            self.expand(ancestor.id)

        node = self.find(target)
        if node is None:
            msg = f"Node {target} not found"
            raise NotFound(msg)
        if isinstance(node, BranchNode):
            self.preview_node, self.selected_node = None, None
            return self.expand(node.id)
        if self.preview_node is not node and self.selected_node is not node:
            self.toggle(node.id)
        return node

    def navigate_to_next_leaf(self) -> LeafNode | None:
        """Open the leaf after the current one in loaded pre-order, or close content."""
        current = self.selected_node or self.preview_node
        if current is None:
            return None
        leaves = [n for n in self.walk() if isinstance(n, LeafNode)]
        index = next((i for i, n in enumerate(leaves) if n is current), -1)
        if index == -1 or index == len(leaves) - 1:
            self.close_content()
            return None
        nxt = leaves[index + 1]
        self.navigate_to(nxt.id)
        return self.select(nxt.id)
