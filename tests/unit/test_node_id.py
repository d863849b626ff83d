"""Tests for the ancestry-encoding node identifier."""

import pytest

from arbor_sync.models.node import NodeId, child_id, parent_of


def test_child_and_parent_round_trip() -> None:
    root = NodeId.root("tree")
    node = root.child("science").child("physics")

    assert str(node) == "@tree__science__physics"
    assert node.parent() == root.child("science")
    assert parent_of(root) is None
    assert node.depth == 2


def test_segments_containing_separator_round_trip() -> None:
    root = NodeId.root("my_tree")
    node = child_id(child_id(root, "a__b"), "c_d%")

    assert node.segments == ("a__b", "c_d%")
    assert node.root_key == "my_tree"
    assert node.parent() == child_id(root, "a__b")
    assert NodeId.parse(str(node)) == node


def test_ancestors_are_root_first() -> None:
    node = NodeId.parse("@t__a__b__c")
    assert [str(a) for a in node.ancestors()] == ["@t", "@t__a", "@t__a__b"]
    assert NodeId.root("t").ancestors() == []


@pytest.mark.parametrize("raw", ["tree__a", "@t____a", "@t__"])
def test_malformed_ids_are_rejected(raw: str) -> None:
    with pytest.raises(ValueError):
        NodeId.parse(raw)


def test_empty_child_segment_is_rejected() -> None:
    with pytest.raises(ValueError):
        NodeId.root("t").child("")
