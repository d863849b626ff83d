"""Ownership rules: who may write which paths.

The rule file is a flat ``<path-prefix> <owner>`` list in the style of a
CODEOWNERS file. Matching is a plain string prefix test, not a glob, and the
longest matching prefix wins, so a narrow rule overrides a broad one without
any ordering requirement.
"""

from collections.abc import Iterable

from arbor_sync.models.node import GovernanceRule

COMMENT_MARKER = "#"

HEADER = "# ARBOR KNOWLEDGE GOVERNANCE\n# Syntax: [Folder Path] [Owner]\n\n"


def normalize_path(path: str) -> str:
    """Strip at most one leading slash."""
    return path[1:] if path.startswith("/") else path


def _normalize_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def parse(raw: str) -> list[GovernanceRule]:
    """Parse an ownership file. Lines that don't split into two tokens are skipped."""
    rules: list[GovernanceRule] = []
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_MARKER):
            continue
        tokens = stripped.split()
        if len(tokens) != 2:
            continue
        rules.append(GovernanceRule(path_pattern=tokens[0], owner=tokens[1]))
    return rules


def owner_of(rules: Iterable[GovernanceRule], path: str) -> GovernanceRule | None:
    """Return the most specific rule covering ``path``, or None."""
    candidate = normalize_path(path)
    best: GovernanceRule | None = None
    best_len = -1
    for rule in rules:
        pattern = normalize_path(rule.path_pattern)
        # Strictly greater: on ties the first rule in scan order stays.
        if candidate.startswith(pattern) and len(pattern) > best_len:
            best, best_len = rule, len(pattern)
    return best


def can_write(rules: Iterable[GovernanceRule], path: str, principal: str) -> bool:
    """Whether ``principal`` may write ``path`` directly.

    Paths no rule covers are writable by any authenticated principal.
    """
    rule = owner_of(rules, path)
    if rule is None:
        return True
    return _normalize_handle(rule.owner) == _normalize_handle(principal)


def update_rule(
    rules: Iterable[GovernanceRule], path: str, owner: str | None
) -> list[GovernanceRule]:
    """Replace the rule for ``path``; an empty owner removes it."""
    formatted = path if path.startswith("/") else "/" + path
    kept = [
        r for r in rules if normalize_path(r.path_pattern) != normalize_path(formatted)
    ]
    if owner:
        kept.append(GovernanceRule(path_pattern=formatted, owner=owner))
    return kept


def serialize(rules: Iterable[GovernanceRule]) -> str:
    """Render rules back into ownership-file text."""
    lines = [f"{r.path_pattern.ljust(20)} {r.owner}" for r in rules]
    return HEADER + "".join(line + "\n" for line in lines)
