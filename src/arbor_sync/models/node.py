"""Domain models for the content graph."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

SEPARATOR = "__"
ROOT_MARKER = "@"

# `_` is escaped so the separator can never appear inside an encoded segment.
_ESCAPES = (("%", "%25"), ("_", "%5F"))


def _escape(segment: str) -> str:
    for raw, encoded in _ESCAPES:
        segment = segment.replace(raw, encoded)
    return segment


def _unescape(segment: str) -> str:
    for raw, encoded in reversed(_ESCAPES):
        segment = segment.replace(encoded, raw)
    return segment


@dataclass(frozen=True, order=True)
class NodeId:
    """Ancestry-encoding node identifier.

    A root id is ``@<key>``; a child id is ``<parent>__<segment>``. Segments are
    escaped, so any name (including ones containing ``__``) round-trips and the
    parent of an id can always be derived by truncation, without the parent
    being loaded.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value.startswith(ROOT_MARKER):
            msg = f"Node id must start with {ROOT_MARKER!r}: {self.value!r}"
            raise ValueError(msg)
        if any(not part for part in self.value[len(ROOT_MARKER) :].split(SEPARATOR)):
            msg = f"Node id has an empty segment: {self.value!r}"
            raise ValueError(msg)

    @classmethod
    def root(cls, key: str) -> "NodeId":
        return cls(ROOT_MARKER + _escape(key))

    @classmethod
    def parse(cls, text: str) -> "NodeId":
        """Validate and wrap a serialized id."""
        return cls(text)

    def child(self, segment: str) -> "NodeId":
        if not segment:
            msg = "Child segment must not be empty"
            raise ValueError(msg)
        return NodeId(self.value + SEPARATOR + _escape(segment))

    def parent(self) -> "NodeId | None":
        head, sep, _tail = self.value.rpartition(SEPARATOR)
        return NodeId(head) if sep else None

    @property
    def is_root(self) -> bool:
        return SEPARATOR not in self.value

    @property
    def root_key(self) -> str:
        return _unescape(self.value[len(ROOT_MARKER) :].split(SEPARATOR)[0])

    @property
    def segments(self) -> tuple[str, ...]:
        """Decoded segments below the root, outermost first."""
        parts = self.value.split(SEPARATOR)[1:]
        return tuple(_unescape(p) for p in parts)

    @property
    def depth(self) -> int:
        return self.value.count(SEPARATOR)

    def ancestors(self) -> list["NodeId"]:
        """All ancestors, root first, excluding the id itself."""
        chain: list[NodeId] = []
        current = self.parent()
        while current is not None:
            chain.append(current)
            current = current.parent()
        chain.reverse()
        return chain

    def __str__(self) -> str:
        return self.value


def child_id(parent: NodeId, segment: str) -> NodeId:
    """Encode the id of ``segment`` under ``parent``."""
    return parent.child(segment)


def parent_of(node_id: NodeId) -> NodeId | None:
    """Decode the parent id, or None for a root."""
    return node_id.parent()


class LoadState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(eq=False)
class BranchNode:
    """A folder-like node: the root of a source or a branch below it."""

    id: NodeId
    name: str
    kind: Literal["root", "branch"] = "branch"
    icon: str = ""
    description: str = ""
    order: str = ""
    remote_path: str | None = None
    api_path: str | None = None
    parent_id: NodeId | None = None
    children: list["Node"] = field(default_factory=list)
    child_load_state: LoadState = LoadState.UNLOADED
    expanded: bool = False

    @property
    def is_leaf(self) -> bool:
        return False

    @property
    def is_empty(self) -> bool:
        return self.child_load_state is LoadState.LOADED and not self.children


@dataclass(eq=False)
class LeafNode:
    """A lesson or exam. Leaves have no children field at all."""

    id: NodeId
    name: str
    kind: Literal["leaf", "exam"] = "leaf"
    icon: str = ""
    description: str = ""
    order: str = ""
    remote_path: str | None = None
    api_path: str | None = None
    parent_id: NodeId | None = None
    body: str | None = None

    @property
    def is_leaf(self) -> bool:
        return True


Node = BranchNode | LeafNode


class EntryType(StrEnum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeEntry:
    """A flat record from a recursive remote listing."""

    path: str
    entry_type: EntryType
    version_token: str = ""

    @property
    def is_directory(self) -> bool:
        return self.entry_type is EntryType.DIRECTORY


@dataclass(frozen=True)
class GovernanceRule:
    """One line of the ownership file."""

    path_pattern: str
    owner: str


class SourceKind(StrEnum):
    ROLLING = "rolling"
    ARCHIVE = "archive"
    COMMUNITY = "community"
    LOCAL = "local"


@dataclass(frozen=True)
class Source:
    """One addressable root tree."""

    id: str
    name: str
    url: str
    trusted: bool = False
    kind: SourceKind = SourceKind.COMMUNITY

    @property
    def is_local(self) -> bool:
        return self.kind is SourceKind.LOCAL or self.url.startswith("local://")


@dataclass(frozen=True)
class RepositoryCoordinates:
    owner: str
    repo: str


@dataclass(frozen=True)
class FileContent:
    body: str
    version_token: str


@dataclass(frozen=True)
class Destination:
    """Where a submitted change ended up."""

    mode: Literal["committed", "review"]
    url: str | None = None
    version_token: str | None = None


@dataclass(frozen=True)
class BulkFailure:
    path: str
    error: str


@dataclass
class BulkResult:
    """Outcome of a best-effort bulk operation."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def count(self) -> int:
        return len(self.succeeded)


@dataclass
class MoveResult:
    """A completed move. Copies always finished; some deletes may not have."""

    moved: list[tuple[str, str]] = field(default_factory=list)
    total: int = 0
    failed_deletes: list[BulkFailure] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return len(self.moved)


@dataclass(frozen=True)
class SearchEntry:
    """A pre-built search index record."""

    id: str
    name: str
    kind: str = ""
    icon: str = ""
    description: str = ""
    path: str = ""
    lang: str = ""


@dataclass(frozen=True)
class Collaborator:
    login: str
    permission: str = ""


@dataclass(frozen=True)
class ReviewRequest:
    number: int
    title: str
    url: str
    head: str = ""
