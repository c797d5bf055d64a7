"""
Conflict Detector — decides whether a draft can be promoted as-is.

Pure functions, no database access. The promotion engine reads both
version numbers and both snapshots inside its transaction and hands them
in here.

    detect_conflict(baseline_version, current_version,
                    baseline_snapshot, current_snapshot) -> Clean | Conflict

Diffs run over ledger snapshots (full payloads), not over draft deltas,
so diverged_fields names what other actors actually changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

_MISSING = object()


@dataclass(frozen=True)
class Clean:
    version: int

    @property
    def is_conflict(self) -> bool:
        return False


@dataclass(frozen=True)
class Conflict:
    draft_version: int
    current_version: int
    diverged_fields: list[str] = field(default_factory=list)

    @property
    def is_conflict(self) -> bool:
        return True


def _walk(old, new, prefix: str, out: list[str]) -> None:
    # An object on one side only is walked against an empty one so leaf paths surface
    if isinstance(old, dict) and (new is _MISSING or new is None):
        new = {}
    elif isinstance(new, dict) and (old is _MISSING or old is None):
        old = {}
    if isinstance(old, dict) and isinstance(new, dict):
        for key in set(old) | set(new):
            path = f"{prefix}.{key}" if prefix else str(key)
            _walk(old.get(key, _MISSING), new.get(key, _MISSING), path, out)
        return
    if old != new:
        out.append(prefix)


def diff_snapshots(old: dict | None, new: dict | None) -> list[str]:
    """Dotted paths whose value differs between two snapshots, sorted.

    Nested objects are compared key by key; lists and scalars compare whole.
    A key present on only one side counts as changed.
    """
    out: list[str] = []
    _walk(old or {}, new or {}, "", out)
    return sorted(out)


def diff_values(old: dict | None, new: dict | None) -> list[dict]:
    """Like diff_snapshots but with the old and new value for each path."""
    result = []
    for path in diff_snapshots(old, new):
        result.append({
            "field": path,
            "old": _lookup(old or {}, path),
            "new": _lookup(new or {}, path),
        })
    return result


def _lookup(data: dict, path: str):
    node = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def detect_conflict(
    baseline_version: int,
    current_version: int,
    baseline_snapshot: dict | None,
    current_snapshot: dict | None,
) -> Clean | Conflict:
    """Compare a draft's baseline with the document's committed version."""
    if baseline_version == current_version:
        return Clean(version=current_version)
    return Conflict(
        draft_version=baseline_version,
        current_version=current_version,
        diverged_fields=diff_snapshots(baseline_snapshot, current_snapshot),
    )
