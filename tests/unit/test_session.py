"""Tests for the per-source session and its content sources."""

from pathlib import Path

import pytest

from arbor_sync.core.sources.session import SourceSession
from arbor_sync.errors import ConflictError, NotFound
from arbor_sync.models.node import BranchNode, LeafNode, LoadState, Source, SourceKind
from tests.unit.fakes import SOURCE, FakeGitHub

OTHER = Source(
    id="org-other",
    name="Other",
    url="https://raw.githubusercontent.com/org/other/main/data/data.json",
)
LOCAL = Source(id="offline", name="Offline", url="local://offline", kind=SourceKind.LOCAL)


def test_repository_mode_loads_the_tree_lazily(github: FakeGitHub) -> None:
    session = SourceSession(github, SOURCE, principal="alice")
    nav = session.navigator

    nav.expand(nav.root.id)
    assert [c.name for c in nav.root.children] == ["history", "science"]

    science = nav.expand("@org-knowledge__science")
    assert [c.name for c in science.children] == ["physics", "intro"]
    physics = science.children[0]
    assert isinstance(physics, BranchNode)
    assert physics.child_load_state is LoadState.UNLOADED

    leaf = nav.select("@org-knowledge__science__intro.md")
    assert leaf.name == "Introduction"
    assert github.count("GET", "git/trees") == 1


def test_repository_refresh_sees_remote_changes(github: FakeGitHub) -> None:
    session = SourceSession(github, SOURCE)
    nav = session.navigator
    nav.expand(nav.root.id)

    github.add_file("content/art/painting.md", "# Painting\n")
    nav.refresh(nav.root.id)

    assert [c.name for c in nav.root.children] == ["art", "history", "science"]
    assert github.count("GET", "git/trees") == 2


def test_switch_discards_every_cache_and_the_graph(github: FakeGitHub) -> None:
    session = SourceSession(github, SOURCE, principal="alice")
    session.navigator.expand(session.navigator.root.id)
    assert session.service is not None
    session.service.governance_rules()
    old_caches, old_nav = session.caches, session.navigator
    assert old_caches.tree.get("main") is not None

    session.switch(OTHER)

    assert old_caches.tree.get("main") is None
    assert old_caches.governance is None
    assert session.caches is not old_caches
    assert session.navigator is not old_nav
    assert session.navigator.root.child_load_state is LoadState.UNLOADED
    assert session.service is not None
    assert session.service.repository().repo == "other"


def test_published_mode_reads_the_prebuilt_tree(github: FakeGitHub) -> None:
    base = "https://raw.githubusercontent.com/org/knowledge/main/data/"
    github.urls[SOURCE.url] = {
        "languages": {
            "EN": {
                "id": "root",
                "name": "Arbor",
                "type": "root",
                "children": [
                    {
                        "id": "@org-knowledge__sci",
                        "name": "Science",
                        "type": "branch",
                        "apiPath": "sci",
                        "hasUnloadedChildren": True,
                    }
                ],
            }
        }
    }
    github.urls[f"{base}nodes/sci.json"] = [
        {"id": "g1", "name": "Gravity", "type": "leaf", "contentPath": "g1.json"},
        {"id": "x1", "name": "Final", "type": "exam", "contentPath": "x1.json"},
    ]
    github.urls[f"{base}content/g1.json"] = {"content": "@icon: 🍎\n\nApples fall."}

    session = SourceSession(github, SOURCE, mode="published", lang="DE")
    nav = session.navigator
    assert nav.root.kind == "root"
    assert nav.root.child_load_state is LoadState.LOADED

    sci = nav.expand("@org-knowledge__sci")
    assert [c.name for c in sci.children] == ["Gravity", "Exam: Final"]
    leaf = nav.select("@org-knowledge__sci__g1")
    assert isinstance(leaf, LeafNode)
    assert leaf.icon == "🍎"
    with pytest.raises(NotFound):
        session.writer


def test_local_source_uses_the_local_store(tmp_path: Path) -> None:
    store_path = tmp_path / "offline.json"
    session = SourceSession(None, LOCAL, local_path=store_path)  # type: ignore[arg-type]
    writer = session.writer

    token = writer.write_file("content/notes/first.md", "@title: First\n\nHi", "add")
    nav = session.navigator
    nav.navigate_to("@offline__notes")
    leaf = nav.select("@offline__notes__first.md")

    assert leaf.name == "First"
    with pytest.raises(ConflictError):
        writer.write_file("content/notes/first.md", "changed", "edit", "stale")
    writer.delete_file("content/notes/first.md", token)
    assert '"content/notes/first.md"' not in store_path.read_text()
    assert session.search.search("fi", "EN") == []
