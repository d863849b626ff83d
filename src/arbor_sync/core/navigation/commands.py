"""Explicit command interface the UI layer holds instead of global handlers."""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from arbor_sync.core.navigation.navigator import Navigator
from arbor_sync.errors import ArborError
from arbor_sync.models.node import Node


@dataclass(frozen=True)
class Expand:
    node_id: str


@dataclass(frozen=True)
class Collapse:
    node_id: str


@dataclass(frozen=True)
class Toggle:
    node_id: str


@dataclass(frozen=True)
class Select:
    node_id: str


@dataclass(frozen=True)
class NavigateTo:
    node_id: str


@dataclass(frozen=True)
class Refresh:
    node_id: str


@dataclass(frozen=True)
class NextLeaf:
    pass


@dataclass(frozen=True)
class CloseContent:
    pass


Command = Expand | Collapse | Toggle | Select | NavigateTo | Refresh | NextLeaf | CloseContent


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    node: Node | None = None
    error: str | None = None


class CommandBus:
    """Dispatches commands to one navigator. Errors come back verbatim, never retried."""

    def __init__(self, navigator: Navigator) -> None:
        self.navigator = navigator

    def dispatch(self, command: Command) -> CommandResult:
        nav = self.navigator
        try:
            node: Any
            match command:
                case Expand(node_id):
                    node = nav.expand(node_id)
                case Collapse(node_id):
                    node = nav.collapse(node_id)
                case Toggle(node_id):
                    node = nav.toggle(node_id)
                case Select(node_id):
                    node = nav.select(node_id)
                case NavigateTo(node_id):
                    node = nav.navigate_to(node_id)
                case Refresh(node_id):
                    node = nav.refresh(node_id)
                case NextLeaf():
                    node = nav.navigate_to_next_leaf()
                case CloseContent():
                    nav.close_content()
                    node = None
                case _:
                    msg = f"Unknown command: {command!r}"
                    raise TypeError(msg)
        except (ArborError, ValueError) as e:
            logger.debug("Command {!r} failed: {}", command, e)
            return CommandResult(ok=False, error=str(e))
        return CommandResult(ok=True, node=node)
