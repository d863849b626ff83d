"""Tests for MCP tool core functions."""

import pytest

from arbor_sync.core.sources.session import SourceSession
from arbor_sync.errors import NetworkError
from arbor_sync.mcp.server import (
    arbor_browse,
    arbor_can_write,
    arbor_move,
    arbor_read,
    arbor_search,
    arbor_submit,
)
from tests.unit.fakes import SOURCE, FakeGitHub


@pytest.fixture
def session(github: FakeGitHub) -> SourceSession:
    return SourceSession(github, SOURCE, principal="alice")


def test_browse_root_lists_children(session: SourceSession) -> None:
    result = arbor_browse(session)

    assert result["node"]["node_id"] == "@org-knowledge"
    assert [c["name"] for c in result["children"]] == ["history", "science"]
    assert result["children"][0]["loaded"] is False


def test_browse_deep_node_with_depth(session: SourceSession) -> None:
    result = arbor_browse(session, node_id="@org-knowledge__science", max_depth=2)

    assert result["breadcrumbs"] == "Knowledge > science"
    assert "orbits" in result["markdown"]


def test_browse_unknown_node_returns_error(session: SourceSession) -> None:
    assert "error" in arbor_browse(session, node_id="@org-knowledge__nope")


def test_browse_and_read_malformed_id_return_error(session: SourceSession) -> None:
    browsed = arbor_browse(session, node_id="g1")
    read = arbor_read(session, node_id="g1")

    assert "g1" in browsed["error"]
    assert "g1" in read["error"]


def test_read_by_node_id_and_path(session: SourceSession) -> None:
    by_id = arbor_read(session, node_id="@org-knowledge__science__intro.md")
    by_path = arbor_read(session, path="content/history/rome.md")

    assert by_id["node"]["name"] == "Introduction"
    assert by_path["body"] == "# Rome\n"
    assert len(by_path["version_token"]) == 40
    assert "error" in arbor_read(session)


def test_search_limits_results(session: SourceSession, github: FakeGitHub) -> None:
    github.urls[
        "https://raw.githubusercontent.com/org/knowledge/main/data/search/EN/g/gr.json"
    ] = [{"id": f"@t__g{i}", "n": f"Gravity {i}"} for i in range(5)]

    result = arbor_search(session, query="gravity", limit=2)

    assert result["count"] == 2
    assert result["total"] == 5
    assert arbor_search(session, query=" ")["error"] == "No search query provided."


def test_can_write_reports_owner(session: SourceSession) -> None:
    result = arbor_can_write(session, path="content/science/physics/waves.md")

    assert result["can_write"] is False
    assert result["owner"] == "@bob"
    assert arbor_can_write(session, path="content/history/rome.md")["owner"] is None


def test_submit_commits_or_requests_review(session: SourceSession, github: FakeGitHub) -> None:
    committed = arbor_submit(
        session, path="content/science/intro.md", body="New\n", message="docs: intro"
    )
    review = arbor_submit(
        session, path="content/science/physics/waves.md", body="W\n", message="docs: waves"
    )

    assert committed["mode"] == "committed"
    assert review["mode"] == "review"
    assert review["url"].endswith("/pull/1")


def test_move_reports_partial_progress(session: SourceSession, github: FakeGitHub) -> None:
    github.fail_on("PUT", "content/physics/orbits.md", NetworkError("boom"))

    result = arbor_move(
        session, old_path="content/science/physics", new_path="content/physics", message="move"
    )

    assert (result["completed"], result["total"]) == (1, 3)
    assert result["moved"] == [["content/science/physics/gravity.md", "content/physics/gravity.md"]]


def test_move_into_itself_is_an_error(session: SourceSession) -> None:
    result = arbor_move(
        session, old_path="content/science", new_path="content/science/x", message="move"
    )
    assert "into itself" in result["error"]
