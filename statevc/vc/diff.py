"""
Structural differ.

Computes an ordered list of field-level changes between two state
documents and applies such a list back onto a document.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from statevc.vc.errors import OperationResult
from statevc.vc.walk import (
    MISSING,
    deep_clone,
    delete_at_path,
    get_at_path,
    join_path,
    kind_of,
    set_at_path,
)


ChangeType = Literal["add", "remove", "modify"]


@dataclass
class Change:
    """
    One entry in a diff.

    Attributes:
        type: "add", "remove" or "modify".
        path: Dot-joined key path from the document root ("" for the root).
        old_value: Value before the change (None for "add").
        new_value: Value after the change (None for "remove").
        timestamp: When the change was computed.
        reason: Optional annotation.
    """

    type: ChangeType
    path: str
    old_value: Any = None
    new_value: Any = None
    timestamp: datetime = field(default_factory=datetime.now)
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type,
            "path": self.path,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }

    def __str__(self) -> str:
        symbol = {"add": "+", "remove": "-", "modify": "~"}[self.type]
        return f"{symbol} {self.path or '<root>'}"


@dataclass
class VersionDiff:
    """Diff between two stored versions, with size accounting."""

    from_version: int
    to_version: int
    changes: list[Change]
    added_size: int = 0
    removed_size: int = 0

    @property
    def modified_count(self) -> int:
        return len(self.changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "changes": [c.to_dict() for c in self.changes],
            "added_size": self.added_size,
            "removed_size": self.removed_size,
            "modified_count": self.modified_count,
        }


@dataclass
class DiffResult(OperationResult):
    diff: VersionDiff | None = None


def _scalars_differ(a: Any, b: Any) -> bool:
    # bool is an int subclass; True == 1 must still count as a change
    return type(a) is not type(b) or a != b


def _diff(a: Any, b: Any, path: tuple[str, ...], out: list[Change], now: datetime) -> None:
    kind_a, kind_b = kind_of(a), kind_of(b)

    if kind_a != kind_b:
        out.append(Change("modify", join_path(path), deep_clone(a), deep_clone(b), now))
        return

    if kind_a == "mapping":
        for key, child in a.items():
            if key in b:
                _diff(child, b[key], path + (key,), out, now)
            else:
                out.append(Change("remove", join_path(path + (key,)), old_value=deep_clone(child), timestamp=now))
        for key, child in b.items():
            if key not in a:
                out.append(Change("add", join_path(path + (key,)), new_value=deep_clone(child), timestamp=now))
        return

    if kind_a == "sequence":
        common = min(len(a), len(b))
        for index in range(common):
            _diff(a[index], b[index], path + (str(index),), out, now)
        for index in range(common, len(b)):
            out.append(Change("add", join_path(path + (str(index),)), new_value=deep_clone(b[index]), timestamp=now))
        # Descending so the removals can be applied one after another
        for index in range(len(a) - 1, common - 1, -1):
            out.append(Change("remove", join_path(path + (str(index),)), old_value=deep_clone(a[index]), timestamp=now))
        return

    if _scalars_differ(a, b):
        out.append(Change("modify", join_path(path), a, b, now))


def diff(a: Any, b: Any, max_changes: int | None = None) -> list[Change]:
    """
    Compute the structural changes that turn document ``a`` into ``b``.

    Neither input is modified. Change values are independent copies.

    Args:
        a: Original document.
        b: New document.
        max_changes: Optional cap; a longer change list raises ValueError.

    Returns:
        Changes in deterministic key-traversal order.
    """
    changes: list[Change] = []
    _diff(a, b, (), changes, datetime.now())
    if max_changes is not None and len(changes) > max_changes:
        raise ValueError(f"Diff has {len(changes)} changes, limit is {max_changes}")
    return changes


def apply_change(document: Any, change: Change) -> Any:
    """Apply one change in place; returns the (possibly new) document root."""
    if change.type == "remove":
        if not change.path:
            return None
        return delete_at_path(document, change.path)
    return set_at_path(document, change.path, deep_clone(change.new_value))


def apply_changes(document: Any, changes: list[Change]) -> Any:
    """Return a copy of ``document`` with ``changes`` applied in order."""
    result = deep_clone(document)
    for change in changes:
        result = apply_change(result, change)
    return result


def value_at(document: Any, path: str) -> Any:
    """Value at ``path``, or None when absent."""
    value = get_at_path(document, path)
    return None if value is MISSING else value
