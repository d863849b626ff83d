"""MCP server exposing tree browsing, search and contribution tools."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from arbor_sync.api import GitHubApi
from arbor_sync.config import LOCAL_STORE_DIR
from arbor_sync.core.governance.resolver import owner_of
from arbor_sync.core.sources.manager import SourceManager
from arbor_sync.core.sources.session import SourceSession
from arbor_sync.core.tree.render import render_tree
from arbor_sync.errors import ArborError, PartialFailure
from arbor_sync.models.node import BranchNode, LeafNode, Node


def _node_dict(node: Node) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "node_id": str(node.id),
        "name": node.name,
        "type": node.kind,
    }
    if node.description:
        entry["description"] = node.description
    if node.remote_path:
        entry["path"] = node.remote_path
    if isinstance(node, BranchNode):
        entry["loaded"] = node.child_load_state == "loaded"
    return entry


# --- Core functions (testable without MCP context) ---


def arbor_browse(
    session: SourceSession,
    *,
    node_id: str | None = None,
    max_depth: int = 1,
) -> dict[str, Any]:
    """Open a node (the root by default) and list what is beneath it.

    Only the branches on the way to the node are fetched.

    Args:
        node_id: Node id to open.
        max_depth: Levels of the subtree to render (1-3).
    """
    nav = session.navigator
    max_depth = max(1, min(max_depth, 3))
    try:
        node = nav.navigate_to(node_id) if node_id else nav.expand(nav.root.id)
        if isinstance(node, LeafNode):
            return {"node": _node_dict(node), "children": [], "markdown": ""}
        pending = [(node, 1)]
        while pending:
            branch, depth = pending.pop()
            if depth >= max_depth:
                continue
            for child in branch.children:
                if isinstance(child, BranchNode):
                    nav.expand(child.id)
                    pending.append((child, depth + 1))
    except (ArborError, ValueError) as e:
        return {"error": str(e)}

    return {
        "node": _node_dict(node),
        "breadcrumbs": " > ".join(n.name for n in nav.breadcrumbs(node.id)),
        "children": [_node_dict(c) for c in node.children],
        "markdown": render_tree([node], max_depth=max_depth),
    }


def arbor_read(
    session: SourceSession,
    *,
    node_id: str | None = None,
    path: str | None = None,
) -> dict[str, Any]:
    """Read a lesson by node id or by repository path.

    Args:
        node_id: Leaf node id (as returned by browse or search).
        path: File path in the repository.
    """
    if not node_id and not path:
        return {"error": "Provide node_id or path."}
    try:
        if node_id:
            session.navigator.navigate_to(node_id)
            leaf = session.navigator.select(node_id)
            return {"node": _node_dict(leaf), "body": leaf.body or ""}
        content = session.writer.read_file(path or "")
    except (ArborError, ValueError) as e:
        return {"error": str(e)}
    return {"path": path, "body": content.body, "version_token": content.version_token}


def arbor_search(
    session: SourceSession,
    *,
    query: str,
    lang: str = "EN",
    limit: int = 20,
) -> dict[str, Any]:
    """Search the published index. One character lists word-initial matches.

    Args:
        query: Search text.
        lang: Index language.
        limit: Max results (1-50, default 20).
    """
    if not query.strip():
        return {"error": "No search query provided.", "results": [], "count": 0, "total": 0}
    limit = max(1, min(limit, 50))
    try:
        if len(query.strip()) == 1:
            results = session.search.search_broad(query, lang)
        else:
            results = session.search.search(query, lang)
    except ArborError as e:
        return {"error": str(e), "results": [], "count": 0, "total": 0}

    serialized = [
        {"node_id": e.id, "name": e.name, "type": e.kind, "path": e.path, "description": e.description}
        for e in results[:limit]
    ]
    return {"results": serialized, "count": len(serialized), "total": len(results)}


def arbor_can_write(
    session: SourceSession,
    *,
    path: str,
    principal: str | None = None,
) -> dict[str, Any]:
    """Whether a change to ``path`` would be committed directly or go to review."""
    if session.service is None:
        return {"error": f"Source {session.source.name!r} has no remote repository"}
    try:
        rules = session.service.governance_rules()
        allowed = session.service.can_write(path, principal)
    except ArborError as e:
        return {"error": str(e)}
    rule = owner_of(rules, path)
    return {
        "path": path,
        "can_write": allowed,
        "owner": rule.owner if rule else None,
        "rule": rule.path_pattern if rule else None,
    }


def arbor_submit(
    session: SourceSession,
    *,
    path: str,
    body: str,
    message: str,
    principal: str | None = None,
) -> dict[str, Any]:
    """Commit a change, or open a review request when the principal doesn't own the path."""
    if session.service is None:
        return {"error": f"Source {session.source.name!r} has no remote repository"}
    try:
        dest = session.service.submit_change(path, body, message, principal)
    except ArborError as e:
        return {"error": str(e)}
    return {"mode": dest.mode, "url": dest.url, "version_token": dest.version_token}


def arbor_move(
    session: SourceSession,
    *,
    old_path: str,
    new_path: str,
    message: str,
) -> dict[str, Any]:
    """Move or rename a file or folder. Reports partial progress on failure."""
    if session.service is None:
        return {"error": f"Source {session.source.name!r} has no remote repository"}
    try:
        result = session.service.move_or_rename(old_path, new_path, message)
    except PartialFailure as e:
        return {
            "error": str(e),
            "completed": e.completed,
            "total": e.total,
            "moved": [list(pair) for pair in e.moved],
        }
    except (ArborError, ValueError) as e:
        return {"error": str(e)}
    finally:
        session.service.invalidate()
    return {
        "completed": result.completed,
        "total": result.total,
        "moved": [list(pair) for pair in result.moved],
        "failed_deletes": [f.path for f in result.failed_deletes],
    }


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    session: SourceSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the active source on startup."""
    manager = SourceManager()
    source_id = os.environ.get("ARBOR_SOURCE")
    source = manager.get(source_id) if source_id else manager.active
    session = SourceSession(
        GitHubApi(anonymous=True),
        source,
        mode=os.environ.get("ARBOR_MODE", "repository"),
        local_path=LOCAL_STORE_DIR / f"{source.id}.json" if source.is_local else None,
    )
    logger.info("Serving source {} ({})", source.name, source.url)
    yield ServerContext(session=session)


mcp_server = FastMCP(
    "arbor-sync",
    instructions="""\
Arbor is a tree of lessons stored in a GitHub repository. The tree is loaded
lazily: browse a node to see its children, read a leaf to get the lesson.

## Workflow
1. arbor_search_tool or arbor_browse_tool to find a node.
2. arbor_read_tool with the node_id of a leaf for its body.
3. Before editing, arbor_can_write_tool tells you whether the change will be
   committed directly or opened as a review request.
4. arbor_submit_tool writes one file; arbor_move_tool moves files or folders.

Folder moves are not atomic. On failure the result says how many files moved.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def arbor_browse_tool(
    ctx: Context,
    node_id: str | None = None,
    max_depth: int = 1,
) -> dict[str, Any]:
    """Open a node of the tree and list its children.

    Without node_id the root is opened. Node ids encode their ancestry, so any
    id from search results can be opened directly.

    Args:
        node_id: Node id to open.
        max_depth: Levels of the subtree to include (1-3).
    """
    async with _ctx(ctx).lock:
        return arbor_browse(_ctx(ctx).session, node_id=node_id, max_depth=max_depth)


@mcp_server.tool()
async def arbor_read_tool(
    ctx: Context,
    node_id: str | None = None,
    path: str | None = None,
) -> dict[str, Any]:
    """Read a lesson body by node id or repository path.

    Args:
        node_id: Leaf node id.
        path: File path in the repository.
    """
    async with _ctx(ctx).lock:
        return arbor_read(_ctx(ctx).session, node_id=node_id, path=path)


@mcp_server.tool()
async def arbor_search_tool(
    ctx: Context,
    query: str,
    lang: str = "EN",
    limit: int = 20,
) -> dict[str, Any]:
    """Search lessons and folders by name or description.

    Args:
        query: Search text (2+ characters; one character lists word initials).
        lang: Index language code.
        limit: Max results (1-50, default 20).
    """
    async with _ctx(ctx).lock:
        return arbor_search(_ctx(ctx).session, query=query, lang=lang, limit=limit)


@mcp_server.tool()
async def arbor_can_write_tool(
    ctx: Context,
    path: str,
    principal: str | None = None,
) -> dict[str, Any]:
    """Check who owns a path and whether a change would be committed directly.

    Args:
        path: File or folder path in the repository.
        principal: Handle to check (default: the token owner).
    """
    async with _ctx(ctx).lock:
        return arbor_can_write(_ctx(ctx).session, path=path, principal=principal)


@mcp_server.tool()
async def arbor_submit_tool(
    ctx: Context,
    path: str,
    body: str,
    message: str,
    principal: str | None = None,
) -> dict[str, Any]:
    """Write one file: committed when allowed, otherwise a review request is opened.

    Args:
        path: File path in the repository.
        body: Full new file content.
        message: Commit message (also the review request title).
        principal: Acting handle (default: the token owner).
    """
    async with _ctx(ctx).lock:
        return arbor_submit(
            _ctx(ctx).session, path=path, body=body, message=message, principal=principal
        )


@mcp_server.tool()
async def arbor_move_tool(
    ctx: Context,
    old_path: str,
    new_path: str,
    message: str,
) -> dict[str, Any]:
    """Move or rename a file or folder, one file at a time.

    Args:
        old_path: Current path.
        new_path: Target path (must not be inside old_path).
        message: Commit message for every file.
    """
    async with _ctx(ctx).lock:
        return arbor_move(_ctx(ctx).session, old_path=old_path, new_path=new_path, message=message)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from arbor_sync.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
