"""Tests for rebuilding a hierarchy from a flat listing."""

from arbor_sync.core.tree.builder import DEFAULT_ROOT, build, flatten
from arbor_sync.core.tree.render import render_tree
from arbor_sync.models.node import BranchNode, EntryType, LeafNode, LoadState, NodeId, TreeEntry

D = EntryType.DIRECTORY
F = EntryType.FILE


def _shape(nodes: list) -> list:
    out = []
    for node in nodes:
        children = _shape(node.children) if isinstance(node, BranchNode) else None
        out.append((str(node.id), node.name, node.kind, node.remote_path, children))
    return out


LISTING = [
    TreeEntry("b.md", F),
    TreeEntry("a", D),
    TreeEntry("a/z.md", F),
    TreeEntry("a/sub", D),
    TreeEntry("a/sub/x.md", F),
    TreeEntry("c", D),
]


def test_directories_first_then_files_sorted_recursively() -> None:
    nodes = build(LISTING)

    assert [n.name for n in nodes] == ["a", "c", "b"]
    a = nodes[0]
    assert isinstance(a, BranchNode)
    assert [n.name for n in a.children] == ["sub", "z"]
    assert isinstance(a.children[1], LeafNode)


def test_load_state_reflects_listing() -> None:
    a, c, _b = build(LISTING)
    assert isinstance(a, BranchNode) and isinstance(c, BranchNode)
    assert a.child_load_state is LoadState.LOADED
    assert c.child_load_state is LoadState.UNLOADED


def test_ids_encode_real_ancestry() -> None:
    nodes = build(LISTING)
    ids = {str(n.id) for _depth, n in flatten(nodes)}
    assert "@tree__a__sub__x.md" in ids
    x = next(n for _d, n in flatten(nodes) if n.name == "x")
    assert x.parent_id == DEFAULT_ROOT.child("a").child("sub")


def test_build_is_idempotent() -> None:
    assert _shape(build(LISTING)) == _shape(build(LISTING))


def test_orphans_are_promoted_to_root_level() -> None:
    nodes = build([TreeEntry("top", D), TreeEntry("missing/deep/leaf.md", F)])

    assert sorted(n.name for n in nodes) == ["leaf", "top"]
    orphan = next(n for n in nodes if n.name == "leaf")
    assert orphan.parent_id is None
    assert str(orphan.id) == "@tree__missing__deep__leaf.md"


def test_duplicate_paths_last_wins() -> None:
    nodes = build([TreeEntry("x", F, "one"), TreeEntry("x", D, "two")])
    assert len(nodes) == 1
    assert isinstance(nodes[0], BranchNode)


def test_base_id_and_path_prefix_children() -> None:
    base = NodeId.root("src").child("content")
    nodes = build([TreeEntry("lesson.md", F), TreeEntry("unit", D)], base_id=base, base_path="content")

    unit, lesson = nodes
    assert unit.parent_id == base
    assert unit.api_path == "content/unit"
    assert lesson.remote_path == "content/lesson.md"
    assert lesson.api_path is None


def test_empty_listing_builds_nothing() -> None:
    assert build([]) == []


def test_render_tree_marks_unloaded_branches() -> None:
    text = render_tree(build(LISTING), show_ids=False)
    assert text.splitlines() == [
        "- a/",
        "    - sub/",
        "        - x",
        "    - z",
        "- c/ ...",
        "- b",
    ]


def test_render_tree_respects_max_depth() -> None:
    text = render_tree(build(LISTING), max_depth=0)
    assert "- a/ (2 more children)" in text
    assert "sub" not in text
