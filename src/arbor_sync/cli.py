"""CLI for arbor-sync (browse, read, write, govern, MCP server)."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from arbor_sync.api import GitHubApi
from arbor_sync.config import LOCAL_STORE_DIR
from arbor_sync.core.governance.resolver import owner_of, serialize, update_rule
from arbor_sync.core.navigation.navigator import Navigator
from arbor_sync.core.sources.manager import SourceManager
from arbor_sync.core.sources.session import SourceSession
from arbor_sync.core.tree.render import render_tree
from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.errors import ArborError, NotFound, PartialFailure
from arbor_sync.logging_config import configure_logging
from arbor_sync.models.node import BranchNode, LeafNode

app = typer.Typer(help="Arbor: browse and edit a knowledge tree stored on GitHub.")
owners_app = typer.Typer(help="Show, check and edit ownership (governance) rules.")
app.add_typer(owners_app, name="owners")

SourceOption = Annotated[
    str | None,
    typer.Option("--source", "-s", help="Source id (default: the active source)"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _manager() -> SourceManager:
    return SourceManager()


def _session(source_id: str | None = None, *, published: bool = False) -> SourceSession:
    """Open the chosen (or active) source."""
    manager = _manager()
    source = manager.get(source_id) if source_id else manager.active
    local_path = LOCAL_STORE_DIR / f"{source.id}.json" if source.is_local else None
    return SourceSession(
        GitHubApi(anonymous=True),
        source,
        mode="published" if published else "repository",
        local_path=local_path,
    )


def _service(session: SourceSession) -> RemoteMutationService:
    if session.service is None:
        logger.error("Source {!r} has no remote repository", session.source.name)
        raise typer.Exit(1)
    return session.service


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Report layer errors as a one-line message and exit non-zero."""
    try:
        yield
    except PartialFailure as e:
        logger.error("{} ({} of {} done, {} untouched)", e, e.completed, e.total, e.remaining)
        raise typer.Exit(1) from e
    except (ArborError, ValueError) as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e


def _load_depth(nav: Navigator, node: BranchNode, depth: int) -> None:
    if depth <= 1:
        return
    for child in list(node.children):
        if isinstance(child, BranchNode):
            nav.expand(child.id)
            _load_depth(nav, child, depth - 1)


@app.command()
def tree(
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Node id to open (default: the root)"),
    ] = None,
    depth: int = typer.Option(1, "--depth", "-m", help="Levels below the node to load"),
    show_ids: bool = typer.Option(False, "--ids", help="Show node ids"),
    published: bool = typer.Option(False, "--published", "-p", help="Read the published tree"),
    source: SourceOption = None,
) -> None:
    """Show a part of the tree, loading only what is needed."""
    with _handle_errors():
        session = _session(source, published=published)
        nav = session.navigator
        target = nav.navigate_to(node) if node else nav.expand(nav.root.id)
        if isinstance(target, LeafNode):
            typer.echo(f"{target.name} (leaf)  id={target.id}")
            return
        _load_depth(nav, target, depth)
        typer.echo(render_tree([target], max_depth=depth, show_ids=show_ids), nl=False)
        logger.debug("Fetched {} listings", nav.fetch_count)


@app.command()
def read(
    target: str = typer.Argument(..., help="File path, or a node id starting with '@'"),
    published: bool = typer.Option(False, "--published", "-p", help="Read the published tree"),
    source: SourceOption = None,
) -> None:
    """Print a lesson body."""
    with _handle_errors():
        session = _session(source, published=published)
        if target.startswith("@"):
            nav = session.navigator
            nav.navigate_to(target)
            leaf = nav.select(target)
            typer.echo(leaf.body or "")
        else:
            typer.echo(session.writer.read_file(target).body)


@app.command()
def write(
    path: str = typer.Argument(..., help="File path in the repository"),
    file: Path = typer.Option(..., "--file", "-f", help="Local file with the new body"),
    message: str = typer.Option("docs: Update content", "--message", "-M", help="Commit message"),
    token: Annotated[
        str | None,
        typer.Option("--token", "-t", help="Version token from the last read"),
    ] = None,
    force: bool = typer.Option(False, "--force", help="Overwrite whatever version is current"),
    source: SourceOption = None,
) -> None:
    """Create or update a single file.

    Without ``--token`` the file must not exist yet; a stale token is a conflict.
    """
    with _handle_errors():
        writer = _session(source).writer
        if token is None and force:
            try:
                token = writer.read_file(path).version_token
            except NotFound:
                token = None
        new_token = writer.write_file(path, file.read_text(encoding="utf-8"), message, token)
        typer.echo(f"Wrote {path} ({new_token[:7]})")


@app.command()
def move(
    old_path: str = typer.Argument(..., help="File or folder to move"),
    new_path: str = typer.Argument(..., help="New location"),
    message: str = typer.Option("chore: Move content", "--message", "-M", help="Commit message"),
    source: SourceOption = None,
) -> None:
    """Move or rename a file or folder, file by file."""
    with _handle_errors():
        result = _service(_session(source)).move_or_rename(old_path, new_path, message)
        typer.echo(f"Moved {result.completed} of {result.total} files")
        for failure in result.failed_deletes:
            typer.echo(f"  original left behind: {failure.path} ({failure.error})")


@app.command(name="rm")
def remove(
    path: str = typer.Argument(..., help="File or folder to delete"),
    message: Annotated[
        str | None,
        typer.Option("--message", "-M", help="Commit message"),
    ] = None,
    source: SourceOption = None,
) -> None:
    """Delete a file or everything below a folder."""
    with _handle_errors():
        result = _service(_session(source)).delete_subtree(path, message)
    typer.echo(f"Deleted {result.count} files")
    for failure in result.failed:
        typer.echo(f"  failed: {failure.path} ({failure.error})")
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def submit(
    path: str = typer.Argument(..., help="File path in the repository"),
    file: Path = typer.Option(..., "--file", "-f", help="Local file with the new body"),
    message: str = typer.Option("docs: Update content", "--message", "-M", help="Commit message"),
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Act as this handle (default: token owner)"),
    ] = None,
    source: SourceOption = None,
) -> None:
    """Commit a change, or open a review request when you don't own the path."""
    with _handle_errors():
        service = _service(_session(source))
        dest = service.submit_change(path, file.read_text(encoding="utf-8"), message, user)
    if dest.mode == "committed":
        typer.echo(f"Committed {path}")
    else:
        typer.echo(f"Review requested: {dest.url}")


@owners_app.command("show")
def owners_show(
    path: Annotated[str | None, typer.Argument(help="Show only the rule covering this path")] = None,
    source: SourceOption = None,
) -> None:
    """List ownership rules, or the rule that governs one path."""
    with _handle_errors():
        rules = _service(_session(source)).governance_rules()
    if path is None:
        typer.echo(serialize(rules), nl=False)
        return
    rule = owner_of(rules, path)
    if rule is None:
        typer.echo(f"{path}: no owner (open to every signed-in user)")
    else:
        typer.echo(f"{path}: {rule.owner} (rule {rule.path_pattern})")


@owners_app.command("check")
def owners_check(
    path: str = typer.Argument(..., help="Path to check"),
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Handle to check (default: token owner)"),
    ] = None,
    source: SourceOption = None,
) -> None:
    """Exit 0 if the user may write the path directly, 1 otherwise."""
    with _handle_errors():
        allowed = _service(_session(source)).can_write(path, user)
    typer.echo("direct write" if allowed else "review request")
    if not allowed:
        raise typer.Exit(1)


@owners_app.command("set")
def owners_set(
    path: str = typer.Argument(..., help="Folder path the rule covers"),
    owner: str = typer.Argument("", help="Owner handle; empty removes the rule"),
    source: SourceOption = None,
) -> None:
    """Add, replace or remove the rule for one path."""
    with _handle_errors():
        service = _service(_session(source))
        current = service.get_ownership_file()
        rules = update_rule(service.governance_rules(), path, owner or None)
        service.save_ownership_file(serialize(rules), current.version_token if current else None)
    typer.echo(f"Saved {len(rules)} rules")


@app.command()
def collaborators(source: SourceOption = None) -> None:
    """List repository collaborators and their roles."""
    with _handle_errors():
        people = _service(_session(source)).list_collaborators()
    typer.echo(f"{len(people)} collaborators:\n")
    for person in people:
        typer.echo(f"  {person.login} ({person.permission})")


@app.command()
def invite(
    handle: str = typer.Argument(..., help="GitHub handle"),
    permission: str = typer.Option("push", "--permission", "-P", help="Repository role"),
    source: SourceOption = None,
) -> None:
    """Invite a collaborator (admins only)."""
    with _handle_errors():
        _service(_session(source)).invite_collaborator(handle, permission)
    typer.echo(f"Invited {handle}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search text (one character searches word initials)"),
    lang: str = typer.Option("EN", "--lang", "-l", help="Index language"),
    limit: int = typer.Option(10, "--limit", "-n", help="Max results"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    source: SourceOption = None,
) -> None:
    """Search the published index of a source."""
    with _handle_errors():
        index = _session(source, published=True).search
        if len(query.strip()) == 1:
            results = index.search_broad(query, lang)
        else:
            results = index.search(query, lang)

    shown = results[:limit]
    if output_json:
        data = {
            "results": [
                {"id": e.id, "name": e.name, "type": e.kind, "path": e.path} for e in shown
            ],
            "total": len(results),
        }
        typer.echo(json.dumps(data, indent=2))
        return
    typer.echo(f"Found {len(results)} results (showing {len(shown)}):\n")
    for e in shown:
        typer.echo(f"  {e.icon} {e.name}".rstrip())
        if e.path:
            typer.echo(f"    {e.path}")
        typer.echo(f"    id={e.id}")


@app.command()
def sources(
    add: Annotated[str | None, typer.Option("--add", help="Add a community source URL")] = None,
    name: Annotated[str | None, typer.Option("--name", help="Name for --add")] = None,
    activate: Annotated[str | None, typer.Option("--activate", help="Source id to use")] = None,
    remove: Annotated[str | None, typer.Option("--remove", help="Source id to forget")] = None,
    releases: bool = typer.Option(False, "--releases", "-r", help="List published versions"),
) -> None:
    """List, add, remove or activate content sources."""
    with _handle_errors():
        manager = _manager()
        if add:
            source = manager.add_community_source(add, name)
            if not source.trusted:
                logger.warning("{} is not an official domain", add)
        if remove:
            manager.remove_community_source(remove)
        if activate:
            manager.activate(activate)
        if releases:
            manager.discover_manifest(GitHubApi(anonymous=True))

    active = manager.active
    for source in manager.sources + manager.available_releases:
        marker = "*" if source.id == active.id else " "
        trust = "" if source.trusted else "  [untrusted]"
        typer.echo(f"{marker} {source.name} ({source.kind}){trust}  id={source.id}")
        typer.echo(f"    {source.url}")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from arbor_sync.mcp.server import run_mcp_server

    run_mcp_server()
