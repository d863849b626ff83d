"""Protocols for dependency injection in the sync layer."""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from arbor_sync.models.node import BranchNode, FileContent, LeafNode, Node, TreeEntry


@runtime_checkable
class ApiProtocol(Protocol):
    """Protocol for GitHub REST clients."""

    def request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke an API endpoint and return the decoded JSON response."""
        ...

    def fetch_url(self, url: str) -> Any:
        """GET an absolute URL (published tree data) and return decoded JSON."""
        ...


@runtime_checkable
class ContentSource(Protocol):
    """Where the navigator fetches subtrees and leaf bodies from."""

    def fetch_children(
        self, node: BranchNode, *, force: bool = False
    ) -> Sequence[Node] | Sequence[TreeEntry]:
        """Return the direct children of ``node``, built or as a flat listing.

        ``force`` bypasses any cached listing; a failed forced fetch must leave
        the cache as it was.
        """
        ...

    def fetch_body(self, node: LeafNode) -> str:
        """Return the text body of a leaf."""
        ...


@runtime_checkable
class WriteTarget(Protocol):
    """Single-file write primitives shared by the remote store and the local store."""

    def read_file(self, path: str) -> FileContent:
        ...

    def write_file(
        self,
        path: str,
        body: str,
        message: str,
        version_token: str | None = None,
        *,
        branch: str | None = None,
    ) -> str:
        ...

    def delete_file(self, path: str, version_token: str, message: str | None = None) -> None:
        ...

    def list_tree(self, prefix: str = "", *, force: bool = False) -> list[TreeEntry]:
        ...
