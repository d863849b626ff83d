"""Tests for the offline store behind local:// sources."""

import json
from pathlib import Path

import pytest

from arbor_sync.core.content.sources import LocalStore, blob_token
from arbor_sync.errors import ConflictError, NotFound
from arbor_sync.models.node import EntryType, Source, SourceKind

LOCAL = Source(id="offline", name="Offline", url="local://offline", kind=SourceKind.LOCAL)


def test_blob_token_matches_git() -> None:
    # `printf 'hello\n' | git hash-object --stdin`
    assert blob_token("hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_create_update_and_conflict() -> None:
    store = LocalStore(LOCAL)
    token = store.write_file("a.md", "one", "create")

    with pytest.raises(ConflictError):
        store.write_file("a.md", "two", "create again")
    with pytest.raises(NotFound):
        store.write_file("b.md", "two", "update", "some-token")

    new_token = store.write_file("/a.md", "two", "update", token)
    assert store.read_file("a.md").body == "two"
    assert new_token == blob_token("two")


def test_delete_requires_current_token() -> None:
    store = LocalStore(LOCAL)
    token = store.write_file("a.md", "one", "create")

    with pytest.raises(ConflictError):
        store.delete_file("a.md", "stale")
    store.delete_file("a.md", token)
    with pytest.raises(NotFound):
        store.read_file("a.md")


def test_list_tree_derives_directories() -> None:
    store = LocalStore(LOCAL)
    store.write_file("content/x/a.md", "a", "add")
    store.write_file("content/b.md", "b", "add")

    entries = {e.path: e.entry_type for e in store.list_tree("content/x")}
    assert entries == {"content/x/a.md": EntryType.FILE, "content/x": EntryType.DIRECTORY}


def test_files_persist_to_json(tmp_path: Path) -> None:
    path = tmp_path / "store" / "offline.json"
    LocalStore(LOCAL, path).write_file("a.md", "one", "create")

    assert json.loads(path.read_text()) == {"a.md": "one"}
    assert LocalStore(LOCAL, path).read_file("a.md").body == "one"
