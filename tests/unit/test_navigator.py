"""Tests for lazy graph navigation."""

import pytest

from arbor_sync.core.content.sources import RepositoryContentSource
from arbor_sync.core.navigation.commands import (
    CloseContent,
    CommandBus,
    Expand,
    NavigateTo,
    NextLeaf,
    Toggle,
)
from arbor_sync.core.navigation.navigator import Navigator
from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.errors import NetworkError, NotFound
from arbor_sync.models.node import BranchNode, LeafNode, LoadState
from tests.unit.fakes import FakeContentSource, FakeGitHub

NEWTON = "@demo__science__physics__mechanics__newton"


@pytest.fixture
def nav(content_source: FakeContentSource, root: BranchNode) -> Navigator:
    return Navigator(content_source, root)


def _branch(nav: Navigator, node_id: str) -> BranchNode:
    node = nav.find(node_id)
    assert isinstance(node, BranchNode)
    return node


def test_expand_fetches_once(nav: Navigator, content_source: FakeContentSource) -> None:
    nav.expand("@demo")
    nav.collapse("@demo")
    nav.expand("@demo")

    assert content_source.fetched == ["@demo"]
    assert nav.root.child_load_state is LoadState.LOADED
    assert [c.name for c in nav.root.children] == ["science", "history", "intro"]


def test_accordion_keeps_one_expanded_branch_per_parent(nav: Navigator) -> None:
    nav.expand("@demo")
    nav.expand("@demo__science")
    nav.expand("@demo__science__physics")
    nav.expand("@demo__history")

    science = _branch(nav, "@demo__science")
    assert not science.expanded
    assert not _branch(nav, "@demo__science__physics").expanded
    assert _branch(nav, "@demo__history").expanded
    expanded = [c for c in nav.root.children if isinstance(c, BranchNode) and c.expanded]
    assert len(expanded) == 1


def test_failed_fetch_leaves_branch_unloaded_and_siblings_untouched(
    nav: Navigator, content_source: FakeContentSource
) -> None:
    nav.expand("@demo")
    nav.expand("@demo__science")
    content_source.failing.add("@demo__history")

    with pytest.raises(NetworkError):
        nav.expand("@demo__history")

    history = _branch(nav, "@demo__history")
    assert history.child_load_state is LoadState.UNLOADED
    assert not history.expanded
    assert _branch(nav, "@demo__science").expanded
    assert nav.last_error is not None and "history" in nav.last_error

    content_source.failing.clear()
    nav.expand("@demo__history")
    assert history.child_load_state is LoadState.LOADED


def test_collapse_folds_all_descendants(nav: Navigator) -> None:
    nav.navigate_to("@demo__science__physics__mechanics")
    nav.collapse("@demo__science")

    for node_id in ("@demo__science", "@demo__science__physics", "@demo__science__physics__mechanics"):
        node = _branch(nav, node_id)
        assert not node.expanded
        assert node.child_load_state is LoadState.LOADED


def test_navigate_to_on_cold_graph_fetches_each_unloaded_ancestor_once(
    nav: Navigator, content_source: FakeContentSource
) -> None:
    node = nav.navigate_to(NEWTON)

    assert content_source.fetched == [
        "@demo",
        "@demo__science",
        "@demo__science__physics",
        "@demo__science__physics__mechanics",
    ]
    assert node is nav.preview_node
    assert [n.name for n in nav.path] == ["Demo", "science", "physics", "mechanics", "newton"]
    for ancestor in nav.path[:-1]:
        assert isinstance(ancestor, BranchNode) and ancestor.expanded


def test_navigate_to_with_partly_loaded_graph_fetches_only_the_rest(
    nav: Navigator, content_source: FakeContentSource
) -> None:
    nav.expand("@demo")
    nav.expand("@demo__science")

    nav.navigate_to(NEWTON)

    assert content_source.fetched[2:] == ["@demo__science__physics", "@demo__science__physics__mechanics"]


def test_navigate_to_branch_expands_it(nav: Navigator) -> None:
    node = nav.navigate_to("@demo__science__chemistry")

    assert isinstance(node, BranchNode)
    assert node.expanded
    assert [c.name for c in node.children] == ["atoms"]
    assert nav.preview_node is None


def test_navigate_to_unknown_node_raises(nav: Navigator) -> None:
    with pytest.raises(NotFound):
        nav.navigate_to("@demo__science__nope")
    with pytest.raises(NotFound):
        nav.navigate_to("@demo__intro__below-a-leaf")
    with pytest.raises(NotFound, match="does not belong"):
        nav.navigate_to("@elsewhere__x")
    with pytest.raises(NotFound, match="science"):
        nav.navigate_to("science")


def test_leaf_toggle_previews_then_selects(nav: Navigator) -> None:
    nav.expand("@demo")

    leaf = nav.toggle("@demo__intro")
    assert nav.preview_node is leaf
    assert nav.selected_node is None
    assert isinstance(leaf, LeafNode) and leaf.body is None

    selected = nav.toggle("@demo__intro")
    assert selected is leaf
    assert nav.preview_node is None
    assert nav.selected_node is leaf
    assert leaf.body is not None and "Hello." in leaf.body
    assert leaf.name == "Start Here"
    assert leaf.icon == "🌱"


def test_toggle_branch_opens_and_closes(nav: Navigator) -> None:
    nav.expand("@demo")
    science = nav.toggle("@demo__science")
    assert isinstance(science, BranchNode) and science.expanded
    nav.toggle("@demo__science")
    assert not science.expanded


def test_exam_leaves_get_label_prefix_once(nav: Navigator) -> None:
    exam = nav.navigate_to("@demo__science__physics__mechanics__final")
    assert exam.name == "Exam: final"

    nav.select(exam.id)
    assert exam.name == "Exam: final"
    assert exam.kind == "exam"


def test_missing_body_records_error(nav: Navigator) -> None:
    nav.navigate_to("@demo__history")
    with pytest.raises(NotFound):
        nav.select("@demo__history__rome")
    assert nav.last_error is not None and "Content missing" in nav.last_error


def test_refresh_replaces_children(nav: Navigator, content_source: FakeContentSource) -> None:
    nav.expand("@demo")
    content_source.outline["@demo"].append(("art", "branch"))

    nav.refresh("@demo")

    assert content_source.forced == ["@demo"]
    assert [c.name for c in nav.root.children] == ["science", "history", "intro", "art"]
    assert nav.find("@demo__art") is not None


def test_failed_refresh_keeps_previous_children(
    nav: Navigator, content_source: FakeContentSource
) -> None:
    nav.expand("@demo")
    before = list(nav.root.children)
    content_source.failing.add("@demo")

    with pytest.raises(NetworkError):
        nav.refresh("@demo")

    assert nav.root.children == before
    assert nav.root.child_load_state is LoadState.LOADED


def test_next_leaf_walks_loaded_leaves_in_order(nav: Navigator) -> None:
    nav.navigate_to("@demo__science__physics__gravity")
    nav.select("@demo__science__physics__gravity")

    nxt = nav.navigate_to_next_leaf()
    assert nxt is not None and nxt.name == "welcome"
    assert nav.selected_node is nxt

    nav.navigate_to("@demo__intro")
    nav.select("@demo__intro")
    assert nav.navigate_to_next_leaf() is None
    assert nav.selected_node is None and nav.preview_node is None


def test_command_bus_reports_errors_verbatim(
    nav: Navigator, content_source: FakeContentSource
) -> None:
    bus = CommandBus(nav)

    ok = bus.dispatch(NavigateTo(NEWTON))
    assert ok.ok and ok.node is nav.preview_node

    not_branch = bus.dispatch(Expand("@demo__intro"))
    assert not not_branch.ok
    assert not_branch.error == "Node @demo__intro is a leaf, not a branch"

    content_source.failing.add("@demo__history")
    failed = bus.dispatch(Toggle("@demo__history"))
    assert not failed.ok
    assert failed.error == "Cannot reach @demo__history"
    assert content_source.fetched.count("@demo__history") == 1

    assert bus.dispatch(CloseContent()).ok
    assert nav.preview_node is None
    assert bus.dispatch(NextLeaf()).node is None


def test_failed_refresh_over_repository_keeps_cached_listing(
    service: RemoteMutationService, github: FakeGitHub
) -> None:
    repo = RepositoryContentSource(service)
    nav = Navigator(repo, repo.root_node())
    nav.expand(nav.root.id)
    cached = service.caches.tree.get("main")
    children = list(nav.root.children)
    github.fail_on("GET", "git/ref/heads/main", NetworkError("offline"))

    with pytest.raises(NetworkError):
        nav.refresh(nav.root.id)

    assert cached is not None
    assert service.caches.tree.get("main") == cached
    assert nav.root.children == children
    assert github.count("GET", "git/trees") == 1


def test_refresh_over_repository_picks_up_remote_changes(
    service: RemoteMutationService, github: FakeGitHub
) -> None:
    repo = RepositoryContentSource(service)
    nav = Navigator(repo, repo.root_node())
    nav.expand(nav.root.id)
    github.add_file("content/art/meta.json", '{"name": "art"}')

    nav.refresh(nav.root.id)

    assert "art" in [c.name for c in nav.root.children]
    assert github.count("GET", "git/trees") == 2
