"""Render node trees as indented text."""

import io
from collections.abc import Sequence

from arbor_sync.core.tree.builder import flatten
from arbor_sync.models.node import BranchNode, LoadState, Node


def render_tree(
    nodes: Sequence[Node],
    *,
    max_depth: int | None = None,
    show_ids: bool = False,
) -> str:
    """Render nodes and their loaded descendants as a bullet list.

    Args:
        nodes: Top-level nodes to render.
        max_depth: Max levels below the top to include (None = unlimited).
        show_ids: Append each node's id.

    Returns:
        Markdown-ish string; branches end with ``/``, unloaded branches with ``/ ...``.
    """
    out = io.StringIO()
    for depth, node in flatten(nodes):
        if max_depth is not None and depth > max_depth:
            continue
        indent = "    " * depth
        label = f"{node.icon} {node.name}".strip()
        if isinstance(node, BranchNode):
            label += "/"
            if node.child_load_state is not LoadState.LOADED:
                label += " ..."
            elif max_depth is not None and depth == max_depth and node.children:
                count = len(node.children)
                noun = "child" if count == 1 else "children"
                label += f" ({count} more {noun})"
        elif node.kind == "exam":
            label += " [exam]"
        if show_ids:
            label += f"  id={node.id}"
        out.write(f"{indent}- {label}\n")
    return out.getvalue()
