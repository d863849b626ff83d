"""Write operations against the remote GitHub store.

Every write carries the version token (blob sha) obtained from a prior read.
The remote only offers single-file primitives, so folder moves are emulated
file by file: copy, then delete. Nothing here is transactional and nothing is
retried; callers report partial results and refresh their view.
"""

import base64
import json
import re
import time
from typing import Any
from urllib.parse import quote

from loguru import logger

from arbor_sync.config import DEFAULT_BRANCH, FOLDER_META_FILE, OWNERSHIP_FILE
from arbor_sync.core.governance.resolver import can_write, normalize_path, parse
from arbor_sync.core.write.cache import SourceCaches
from arbor_sync.errors import (
    AlreadyExists,
    ArborError,
    AuthenticationError,
    NotFound,
    PartialFailure,
    PermissionDenied,
)
from arbor_sync.models.node import (
    BulkFailure,
    BulkResult,
    Collaborator,
    Destination,
    EntryType,
    FileContent,
    GovernanceRule,
    MoveResult,
    RepositoryCoordinates,
    ReviewRequest,
    Source,
    TreeEntry,
)
from arbor_sync.protocols import ApiProtocol


def _encode(body: str) -> str:
    return base64.b64encode(body.encode("utf-8")).decode("ascii")


def _decode(content: str) -> str:
    # GitHub wraps base64 payloads at 60 columns; b64decode drops the newlines.
    return base64.b64decode(content).decode("utf-8")


def sanitize_name(name: str) -> str:
    """Make a user-typed name safe as a path segment."""
    return re.sub(r"[^a-zA-Z0-9_\-.]", "", re.sub(r"\s+", "_", name.strip()))


class RemoteMutationService:
    """File CRUD, recursive move/delete and contribution routing for one source."""

    def __init__(
        self,
        api: ApiProtocol,
        source: Source,
        *,
        caches: SourceCaches | None = None,
        branch: str = DEFAULT_BRANCH,
        principal: str | None = None,
        ownership_path: str = OWNERSHIP_FILE,
    ) -> None:
        self.api = api
        self.source = source
        self.caches = caches or SourceCaches(source)
        self.branch = branch
        self.ownership_path = ownership_path
        self._principal = principal
        self._principal_known = principal is not None

    # --- Plumbing ---

    def repository(self) -> RepositoryCoordinates:
        return self.caches.repository.get()

    def _repo_path(self, suffix: str) -> str:
        coords = self.repository()
        return f"repos/{coords.owner}/{coords.repo}/{suffix}"

    def _contents_path(self, path: str) -> str:
        return self._repo_path("contents/" + quote(normalize_path(path), safe="/"))

    def _call(
        self,
        method: str,
        suffix: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return self.api.request(method, self._repo_path(suffix), payload=payload, params=params)

    def invalidate(self) -> None:
        """Drop every source-scoped cache (listing, coordinates, governance)."""
        self.caches.invalidate()

    # --- Single-file primitives ---

    def read_file(self, path: str, *, branch: str | None = None) -> FileContent:
        """Fetch and decode one file.

        Raises:
            NotFound: The path is absent or is a directory.
        """
        params = {"ref": branch} if branch else None
        data = self.api.request("GET", self._contents_path(path), params=params)
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            msg = f"{path!r} is not a file"
            raise NotFound(msg)
        return FileContent(body=_decode(data.get("content", "")), version_token=data["sha"])

    def write_file(
        self,
        path: str,
        body: str,
        message: str,
        version_token: str | None = None,
        *,
        branch: str | None = None,
    ) -> str:
        """Create (no token) or update (token) a file, returning the new token.

        Raises:
            ConflictError: The token is stale, or the file exists and no token was given.
        """
        payload: dict[str, Any] = {"message": message, "content": _encode(body)}
        if version_token:
            payload["sha"] = version_token
        if branch:
            payload["branch"] = branch
        data = self.api.request("PUT", self._contents_path(path), payload=payload)
        new_token: str = data["content"]["sha"]
        logger.info("Wrote {} ({})", path, "update" if version_token else "create")
        return new_token

    def delete_file(
        self,
        path: str,
        version_token: str,
        message: str | None = None,
        *,
        branch: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "message": message or f"chore: Delete {path}",
            "sha": version_token,
        }
        if branch:
            payload["branch"] = branch
        self.api.request("DELETE", self._contents_path(path), payload=payload)
        logger.info("Deleted {}", path)

    # --- Listing ---

    def _head_sha(self, branch: str) -> str:
        data = self._call("GET", f"git/ref/heads/{quote(branch, safe='/')}")
        return data["object"]["sha"]  # type: ignore[no-any-return]

    def list_tree(
        self, prefix: str = "", *, force: bool = False, branch: str | None = None
    ) -> list[TreeEntry]:
        """Recursive listing of the branch head, optionally filtered to ``prefix``.

        The listing is cached until invalidated. ``force`` re-fetches it; if the
        re-fetch fails the previous listing stays cached.
        """
        branch = branch or self.branch
        entries = None if force else self.caches.tree.get(branch)
        if entries is None:
            head = self._head_sha(branch)
            data = self._call("GET", f"git/trees/{head}", params={"recursive": "true"})
            if data.get("truncated"):
                logger.warning("Tree listing for {} is truncated", branch)
            entries = [
                TreeEntry(
                    path=item["path"],
                    entry_type=EntryType.DIRECTORY if item["type"] == "tree" else EntryType.FILE,
                    version_token=item.get("sha", ""),
                )
                for item in data.get("tree", [])
                if item.get("type") in ("tree", "blob")
            ]
            self.caches.tree.put(branch, entries)
            logger.debug("Listed {} entries on {}", len(entries), branch)

        base = normalize_path(prefix).rstrip("/")
        if not base:
            return list(entries)
        return [e for e in entries if e.path == base or e.path.startswith(base + "/")]

    def list_children(self, path: str, *, force: bool = False) -> list[TreeEntry]:
        """Direct children of a directory, with paths relative to it."""
        base = normalize_path(path).rstrip("/")
        cut = len(base) + 1 if base else 0
        children = []
        for entry in self.list_tree(base, force=force):
            rel = entry.path[cut:]
            if rel and "/" not in rel:
                children.append(
                    TreeEntry(path=rel, entry_type=entry.entry_type, version_token=entry.version_token)
                )
        return children

    def _files_under(self, path: str) -> list[TreeEntry]:
        base = normalize_path(path).rstrip("/")
        return [
            e
            for e in self.list_tree(base)
            if not e.is_directory and e.path.startswith(base + "/")
        ]

    # --- Multi-file operations ---

    def move_or_rename(self, old_path: str, new_path: str, message: str) -> MoveResult:
        """Move a file, or every file of a folder, from ``old_path`` to ``new_path``.

        Files are processed one at a time: read, write at the new location, delete
        the original. If reading or writing file K of M fails, the first K-1 files
        are already moved, the rest are untouched, and PartialFailure is raised.
        A failed delete after a successful copy is recorded and the loop goes on.

        Raises:
            PartialFailure: A folder move stopped part way.
            NotFound: Nothing exists at ``old_path``.
            ValueError: ``new_path`` lies inside ``old_path``.
        """
        old = normalize_path(old_path).rstrip("/")
        new = normalize_path(new_path).rstrip("/")
        if old == new:
            return MoveResult()
        if new.startswith(old + "/"):
            msg = f"Cannot move {old!r} into itself ({new!r})"
            raise ValueError(msg)

        try:
            single = self.read_file(old)
        except NotFound:
            single = None

        if single is not None:
            self.write_file(new, single.body, message)
            result = MoveResult(moved=[(old, new)], total=1)
            self._delete_after_copy(old, single.version_token, message, result)
            return result

        files = self._files_under(old)
        if not files:
            msg = f"Nothing to move at {old!r}"
            raise NotFound(msg)

        result = MoveResult(total=len(files))
        for index, entry in enumerate(files):
            target = new + entry.path[len(old) :]
            try:
                content = self.read_file(entry.path)
                self.write_file(target, content.body, message)
            except ArborError as e:
                msg = (
                    f"Moved {index} of {len(files)} files from {old!r} to {new!r}; "
                    f"stopped at {entry.path!r}: {e}"
                )
                raise PartialFailure(
                    msg, completed=index, total=len(files), moved=result.moved, cause=e
                ) from e
            result.moved.append((entry.path, target))
            self._delete_after_copy(entry.path, content.version_token, message, result)

        logger.info("Moved {} files from {} to {}", result.completed, old, new)
        return result

    def _delete_after_copy(
        self, path: str, version_token: str, message: str, result: MoveResult
    ) -> None:
        try:
            self.delete_file(path, version_token, message)
        except ArborError as e:
            logger.warning("Copied {} but could not delete the original: {}", path, e)
            result.failed_deletes.append(BulkFailure(path=path, error=str(e)))

    def rename(self, old_path: str, new_name: str, message: str | None = None) -> MoveResult:
        """Rename a file or folder within its parent."""
        safe = sanitize_name(new_name)
        if not safe:
            msg = f"Invalid name: {new_name!r}"
            raise ValueError(msg)
        old = normalize_path(old_path).rstrip("/")
        parent, _sep, old_name = old.rpartition("/")
        new = f"{parent}/{safe}" if parent else safe
        return self.move_or_rename(old, new, message or f"chore: Rename {old_name} to {safe}")

    def delete_subtree(self, path: str, message: str | None = None) -> BulkResult:
        """Delete a file or every file below a folder, best effort.

        Each file is deleted independently; failures are collected, not raised.
        """
        base = normalize_path(path).rstrip("/")
        targets = [e for e in self.list_tree(base) if not e.is_directory]
        result = BulkResult()
        for entry in targets:
            try:
                self.delete_file(entry.path, entry.version_token, message or f"chore: Delete {base}")
            except ArborError as e:
                logger.warning("Skipping {}: {}", entry.path, e)
                result.failed.append(BulkFailure(path=entry.path, error=str(e)))
            else:
                result.succeeded.append(entry.path)
        logger.info(
            "Deleted {} of {} files under {}", result.count, len(targets), base
        )
        return result

    def create_node(self, parent_path: str, name: str, kind: str = "leaf") -> str:
        """Create a folder (with its meta file) or a lesson, returning the new token."""
        parent = normalize_path(parent_path).rstrip("/")
        if kind in ("branch", "folder"):
            path = f"{parent}/{name}/{FOLDER_META_FILE}"
            body = json.dumps({"name": name, "icon": "📁", "order": "99"}, indent=2)
        else:
            filename = name if name.endswith(".md") else f"{name}.md"
            path = f"{parent}/{filename}"
            body = f"@title: {name}\n@icon: 📄\n\n# {name}\n"
        return self.write_file(path, body, f"feat: Create {name}")

    # --- Contribution routing ---

    @property
    def principal(self) -> str | None:
        """Handle of the acting user; looked up from the token once when not given."""
        if not self._principal_known:
            self._principal = self.current_user()
            self._principal_known = True
        return self._principal

    def current_user(self) -> str | None:
        """Login of the token owner, or None for an anonymous client."""
        try:
            data = self.api.request("GET", "user")
        except AuthenticationError:
            return None
        return data["login"] if data else None

    def governance_rules(self) -> list[GovernanceRule]:
        """Ownership rules of this source, fetched once."""
        if self.caches.governance is None:
            ownership = self.get_ownership_file()
            self.caches.governance = parse(ownership.body) if ownership else []
        return self.caches.governance

    def can_write(self, path: str, principal: str | None = None) -> bool:
        handle = principal or self.principal
        return bool(handle) and can_write(self.governance_rules(), path, handle)

    def ensure_can_submit(self, path: str, principal: str | None = None) -> bool:
        """Whether a change to ``path`` is committed directly (True) or reviewed (False).

        Raises:
            PermissionDenied: No authenticated principal, so neither route is open.
        """
        handle = principal or self.principal
        if not handle:
            msg = "Sign in to submit changes"
            raise PermissionDenied(msg)
        return can_write(self.governance_rules(), path, handle)

    def _current_token(self, path: str, *, branch: str | None = None) -> str | None:
        try:
            return self.read_file(path, branch=branch).version_token
        except NotFound:
            return None

    def create_branch(self, name: str, *, from_branch: str | None = None) -> str:
        """Create ``name`` at the head of ``from_branch``; an existing branch is fine."""
        sha = self._head_sha(from_branch or self.branch)
        try:
            self._call("POST", "git/refs", payload={"ref": f"refs/heads/{name}", "sha": sha})
        except AlreadyExists:
            logger.debug("Branch {} already exists", name)
        return name

    def submit_change(
        self,
        path: str,
        body: str,
        message: str,
        principal: str | None = None,
        *,
        branch_name: str | None = None,
    ) -> Destination:
        """Commit directly when governance allows it, otherwise open a review request.

        Raises:
            PermissionDenied: No authenticated principal.
        """
        if self.ensure_can_submit(path, principal):
            token = self._current_token(path)
            new_token = self.write_file(path, body, message, token)
            return Destination(mode="committed", version_token=new_token)

        branch = branch_name or f"feat/edit-{time.time_ns() // 1_000_000}"
        self.create_branch(branch)
        token = self._current_token(path, branch=branch)
        new_token = self.write_file(path, body, message, token, branch=branch)
        pr = self._call(
            "POST",
            "pulls",
            payload={
                "title": message,
                "body": f"Proposed changes to {normalize_path(path)} via Arbor.",
                "head": branch,
                "base": self.branch,
            },
        )
        logger.info("Opened review request {} for {}", pr["html_url"], path)
        return Destination(mode="review", url=pr["html_url"], version_token=new_token)

    # --- Administration ---

    def is_admin(self, principal: str | None = None) -> bool:
        handle = principal or self.principal
        if not handle:
            return False
        try:
            data = self._call("GET", f"collaborators/{quote(handle)}/permission")
        except NotFound:
            return False
        return data.get("permission") == "admin"  # type: ignore[no-any-return]

    def list_collaborators(self) -> list[Collaborator]:
        data = self._call("GET", "collaborators") or []
        return [Collaborator(login=c["login"], permission=c.get("role_name", "")) for c in data]

    def invite_collaborator(self, handle: str, permission: str = "push") -> None:
        self._call("PUT", f"collaborators/{quote(handle)}", payload={"permission": permission})
        logger.info("Invited {} as {}", handle, permission)

    def list_review_requests(self) -> list[ReviewRequest]:
        data = self._call("GET", "pulls", params={"state": "open"}) or []
        return [
            ReviewRequest(
                number=p["number"],
                title=p.get("title", ""),
                url=p.get("html_url", ""),
                head=p.get("head", {}).get("ref", ""),
            )
            for p in data
        ]

    def get_ownership_file(self) -> FileContent | None:
        try:
            return self.read_file(self.ownership_path)
        except NotFound:
            return None

    def save_ownership_file(self, content: str, version_token: str | None = None) -> str:
        token = self.write_file(
            self.ownership_path, content, "chore: Update governance rules", version_token
        )
        self.caches.governance = parse(content)
        return token

    def check_health(self) -> bool:
        """Whether the repository is reachable with the current credentials."""
        try:
            self.api.request("GET", self._repo_path("").rstrip("/"))
        except NotFound:
            return False
        return True
