"""
Three-way merge of branches.

Locates the common ancestor of two branches, computes the independent
change sets since that ancestor, detects conflicting changes, asks a
caller-supplied resolver for decisions and builds the merged document.
Committing the result is left to the engine.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping

from loguru import logger

from statevc.vc.branch import Branch
from statevc.vc.branches import BranchManager
from statevc.vc.diff import Change, apply_change, diff, value_at
from statevc.vc.errors import MergeAborted, NotFound, VersionControlError
from statevc.vc.hash import canonical_json
from statevc.vc.store import VersionStore
from statevc.vc.walk import PATH_SEPARATOR, deep_clone, set_at_path


Resolution = Literal["source", "target", "manual"]


@dataclass
class MergeConflict:
    """
    A path changed differently on both sides of a merge.

    Attributes:
        path: Conflicting path (the shorter one when the changes nest).
        base_value: Value at the common ancestor (None if absent).
        source_value: Value on the source head (None if absent).
        target_value: Value on the target head (None if absent).
        resolution: "manual" when the resolver decided, "target" when the
            target value was kept because no decision was given.
        resolved_value: Value written to the merged document.
    """

    path: str
    base_value: Any
    source_value: Any
    target_value: Any
    resolution: Resolution | None = None
    resolved_value: Any = None

    @property
    def is_resolved(self) -> bool:
        return self.resolution == "manual"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "base_value": self.base_value,
            "source_value": self.source_value,
            "target_value": self.target_value,
            "resolution": self.resolution,
            "resolved_value": self.resolved_value,
        }


@dataclass
class MergeResult:
    """
    Outcome of a merge.

    A successful merge whose conflicts were not all resolved by the caller
    is *partial*: the unresolved paths kept the target's value.
    """

    success: bool
    target_version: int | None = None
    conflicts: list[MergeConflict] = field(default_factory=list)
    resolved_changes: list[Change] = field(default_factory=list)
    message: str | None = None
    error: VersionControlError | None = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def unresolved_paths(self) -> list[str]:
        return [c.path for c in self.conflicts if not c.is_resolved]

    @property
    def is_partial(self) -> bool:
        return self.success and bool(self.unresolved_paths)


# Returns {path: value}, directly or from a coroutine
ConflictResolver = Callable[[list[MergeConflict]], Any]


@dataclass
class MergePlan:
    """Everything needed to commit a merge."""

    source: str
    target: str
    base_version: int
    target_document: Any
    merged_document: Any
    conflicts: list[MergeConflict]


def _is_ancestor_path(ancestor: str, path: str) -> bool:
    if ancestor == "":
        return path != ""
    return path.startswith(ancestor + PATH_SEPARATOR)


def _same_outcome(a: Change, b: Change) -> bool:
    if a.type == "remove" or b.type == "remove":
        return a.type == b.type
    return canonical_json(a.new_value) == canonical_json(b.new_value)


class MergeEngine:
    """Plans three-way merges between branches of one version store."""

    def __init__(self, store: VersionStore, branches: BranchManager):
        self.store = store
        self.branches = branches

    def find_common_ancestor(self, source: Branch, target: Branch) -> int:
        """
        Find the most recent version shared by both branch histories.

        Scans the target history newest-first for a version also listed on
        the source. Falls back to the smaller base version. This is exact
        only for linear per-branch histories.

        Raises:
            MergeAborted: No candidate ancestor exists.
        """
        source_versions = set(source.versions)
        for version in reversed(target.versions):
            if version in source_versions:
                return version

        bases = [b for b in (source.base_version, target.base_version) if b is not None]
        if not bases:
            raise MergeAborted(
                f"Could not determine a common ancestor of '{source.name}' and '{target.name}'"
            )
        return min(bases)

    def detect_conflicts(
        self,
        base_document: Any,
        source_document: Any,
        target_document: Any,
        source_changes: list[Change],
        target_changes: list[Change],
    ) -> list[MergeConflict]:
        """
        Find paths changed differently by both sides.

        A source change conflicts with a target change at the same path
        whose outcome differs, or with a target change whose path nests
        inside it (or contains it). Nested conflicts are reported once, at
        the shorter path.
        """
        target_by_path = {c.path: c for c in target_changes}
        paths: dict[str, None] = {}

        for change in source_changes:
            other = target_by_path.get(change.path)
            if other is not None:
                if not _same_outcome(change, other):
                    paths[change.path] = None
                continue

            for target_path in target_by_path:
                if _is_ancestor_path(target_path, change.path):
                    paths[target_path] = None
                    break
                if _is_ancestor_path(change.path, target_path):
                    paths[change.path] = None
                    break

        outermost = [
            p for p in paths
            if not any(_is_ancestor_path(other, p) for other in paths)
        ]

        return [
            MergeConflict(
                path=path,
                base_value=value_at(base_document, path),
                source_value=value_at(source_document, path),
                target_value=value_at(target_document, path),
            )
            for path in outermost
        ]

    async def resolve(
        self,
        conflicts: list[MergeConflict],
        resolver: ConflictResolver | None,
    ) -> None:
        """
        Ask the resolver for decisions and record them on the conflicts.

        Conflicts without a decision keep the target value and are marked
        with resolution "target".

        Raises:
            MergeAborted: The resolver raised.
        """
        resolutions: Mapping[str, Any] = {}
        if resolver is not None and conflicts:
            try:
                outcome = resolver(conflicts)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                raise MergeAborted(f"Conflict resolver failed: {e}") from e
            resolutions = outcome or {}

        known = {c.path for c in conflicts}
        for path in resolutions:
            if path not in known:
                logger.warning(f"Ignoring resolution for non-conflicting path '{path}'")

        for conflict in conflicts:
            if conflict.path in resolutions:
                conflict.resolution = "manual"
                conflict.resolved_value = resolutions[conflict.path]
            else:
                conflict.resolution = "target"
                conflict.resolved_value = conflict.target_value

    def build_merged(
        self,
        target_document: Any,
        source_changes: list[Change],
        conflicts: list[MergeConflict],
    ) -> Any:
        """Apply non-conflicting source changes and manual resolutions to a copy of the target."""
        merged = deep_clone(target_document)
        conflicted = [c.path for c in conflicts]

        for change in source_changes:
            if any(change.path == p or _is_ancestor_path(p, change.path) for p in conflicted):
                continue
            merged = apply_change(merged, change)

        for conflict in conflicts:
            if conflict.is_resolved:
                merged = set_at_path(merged, conflict.path, deep_clone(conflict.resolved_value))

        return merged

    async def plan(
        self,
        source_name: str,
        target_name: str,
        resolver: ConflictResolver | None = None,
    ) -> MergePlan:
        """
        Compute the merged document for ``source_name`` into ``target_name``.

        Raises:
            NotFound: A branch, head or version is missing.
            IntegrityFailure: A payload failed checksum verification.
            MergeAborted: No ancestor, or the resolver raised.
        """
        source = self.branches.get_branch(source_name)
        target = self.branches.get_branch(target_name)

        for branch in (source, target):
            if branch.current_version is None:
                raise NotFound(f"Branch '{branch.name}' has no commits")

        base_version = self.find_common_ancestor(source, target)
        if not self.store.has(base_version):
            raise MergeAborted(f"Common ancestor v{base_version} is no longer stored")

        base_document = self.store.read(base_version)
        source_document = self.store.read(source.current_version)
        target_document = self.store.read(target.current_version)

        source_changes = diff(base_document, source_document)
        target_changes = diff(base_document, target_document)

        conflicts = self.detect_conflicts(
            base_document,
            source_document,
            target_document,
            source_changes,
            target_changes,
        )
        if conflicts:
            logger.info(
                f"Merge {source_name} -> {target_name}: {len(conflicts)} conflict(s) "
                f"since v{base_version}"
            )
        await self.resolve(conflicts, resolver)

        merged = self.build_merged(target_document, source_changes, conflicts)

        return MergePlan(
            source=source_name,
            target=target_name,
            base_version=base_version,
            target_document=target_document,
            merged_document=merged,
            conflicts=conflicts,
        )


def prefer_source(conflicts: list[MergeConflict]) -> dict[str, Any]:
    """Resolver that takes the source value for every conflict."""
    return {c.path: c.source_value for c in conflicts}


def prefer_target(conflicts: list[MergeConflict]) -> dict[str, Any]:
    """Resolver that explicitly keeps the target value for every conflict."""
    return {c.path: c.target_value for c in conflicts}
