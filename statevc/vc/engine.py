"""
State version control - main interface of the engine.

Snapshots a game-state document over time on named branches, tags
snapshots, diffs them and merges branches three ways. One instance owns
all of its state; independent engines (one per game session) can coexist.
"""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any, Iterable

from loguru import logger

from statevc.config.schema import VersionControlConfig
from statevc.vc.autotag import derive_tags
from statevc.vc.branch import Branch
from statevc.vc.branches import BranchManager
from statevc.vc.diff import DiffResult, VersionDiff, diff
from statevc.vc.errors import (
    AlreadyExists,
    CheckoutResult,
    CommitFailure,
    CommitResult,
    IntegrityFailure,
    LimitExceeded,
    MergeAborted,
    NotFound,
    OperationResult,
    VersionControlError,
)
from statevc.vc.hash import canonical_json, compute_checksum, compute_size, verify_checksum
from statevc.vc.merge import ConflictResolver, MergeEngine, MergeResult
from statevc.vc.query import VersionQuery, run_query
from statevc.vc.retention import Retention, RetentionReport, RetentionTask
from statevc.vc.store import VersionStore
from statevc.vc.tag import Tag
from statevc.vc.tags import TagManager
from statevc.vc.version import VersionInfo
from statevc.vc.walk import deep_clone


SNAPSHOT_FORMAT = 1


class StateVersionControl:
    """
    Version control for game-state documents.

    Mutating commands (commit, branch/tag creation, merge, retention) are
    serialized behind one lock so each of them is atomic for callers.
    Reads never lock; documents handed out are always private copies.

    Usage:
        async with StateVersionControl(VersionControlConfig()) as vc:
            result = await vc.commit(state, "turn 12", "alice")
    """

    def __init__(self, config: VersionControlConfig | None = None):
        self.config = config or VersionControlConfig()

        self.store = VersionStore()
        self.branches = BranchManager(
            self.store,
            default_branch=self.config.default_branch,
            max_branches=self.config.max_branches,
            protect_default=self.config.enable_branch_protection,
        )
        self.tags = TagManager(self.store)
        self.merger = MergeEngine(self.store, self.branches)
        self.retention = Retention(
            self.store,
            self.branches,
            self.tags,
            max_versions_per_branch=self.config.max_versions_per_branch,
            max_age=timedelta(days=self.config.retention_max_age_days),
        )

        self._lock = asyncio.Lock()
        self._retention_task = RetentionTask(
            self._scheduled_sweep,
            interval_s=self.config.cleanup_interval_ms / 1000,
        )
        self._retention_task.start()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the retention task if it could not be started at construction."""
        self._retention_task.start()

    async def close(self) -> None:
        """Stop background work; stored history is kept."""
        await self._retention_task.stop()

    async def cleanup(self) -> None:
        """Stop background work and discard all versions, branches and tags."""
        await self._retention_task.stop()
        async with self._lock:
            self.store.clear()
            self.tags.clear()
            self.branches.clear()
        logger.info("Version control state cleared")

    async def __aenter__(self) -> "StateVersionControl":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def retention_running(self) -> bool:
        return self._retention_task.running

    # =========================================================================
    # Commit / Checkout
    # =========================================================================

    async def commit(
        self,
        document: Any,
        message: str,
        author: str,
        tags: Iterable[str] = (),
    ) -> CommitResult:
        """
        Snapshot ``document`` on the active branch.

        Args:
            document: State document (mappings, sequences, scalars).
            message: Commit message.
            author: Who is committing.
            tags: Tag names to create for the new version.

        Returns:
            CommitResult with the new version number, or the failure.
        """
        if isinstance(tags, str):
            tags = [tags]
        async with self._lock:
            try:
                version = self._commit_locked(document, message, author, list(tags))
            except VersionControlError as e:
                return CommitResult.failed(e)
            except Exception as e:
                logger.error(f"Commit failed: {e}")
                return CommitResult.failed(CommitFailure(f"Commit failed: {e}"))
        return CommitResult(success=True, version=version)

    def _commit_locked(
        self,
        document: Any,
        message: str,
        author: str,
        tags: list[str],
        branch_name: str | None = None,
        allow_protected: bool = False,
    ) -> int:
        branch = self.branches.get_branch(branch_name or self.branches.get_current_branch_name())

        if branch.is_protected and self.config.block_commits_to_protected and not allow_protected:
            raise CommitFailure(f"Branch '{branch.name}' is protected against direct commits")

        # Snapshot before allocating a number so a bad document leaves no trace
        try:
            payload = deep_clone(document)
            checksum = compute_checksum(payload)
            size = compute_size(payload)
        except (TypeError, ValueError) as e:
            raise CommitFailure(f"Cannot snapshot document: {e}") from e

        timestamp = datetime.now()
        names = list(dict.fromkeys(tags))
        # Requested tags are labelled by their Tag records below
        labels = []
        if self.config.enable_auto_tagging:
            labels = [t for t in derive_tags(payload, timestamp) if t not in names]

        info = VersionInfo(
            version=self.store.next_version(),
            branch_name=branch.name,
            author=author,
            message=message,
            checksum=checksum,
            size=size,
            parent_version=branch.current_version,
            timestamp=timestamp,
            tags=labels,
        )

        self.store.put(info, payload)
        dropped = branch.advance(info.version, self.config.max_versions_per_branch)

        for name in names:
            try:
                self.tags.create_tag(name, info.version, f"Tagged during commit: {message}")
            except AlreadyExists as e:
                info.add_tag(name)
                logger.warning(f"Commit v{info.version}: {e}")

        self.retention.enforce_limits(dropped)

        logger.info(f"Committed v{info.version} on '{branch.name}' by {author}: {message}")
        return info.version

    def _resolve_target(self, target: int | str) -> tuple[int, str | None]:
        """Resolve a checkout target to (version, branch to activate)."""
        if isinstance(target, int) and not isinstance(target, bool):
            if not self.store.has(target):
                raise NotFound(f"Version {target} not found")
            return target, None

        branch = self.branches.find_branch(target)
        if branch is not None:
            if branch.current_version is None:
                raise NotFound(f"Branch '{target}' has no commits")
            return branch.current_version, branch.name

        tag = self.tags.find_tag(target)
        if tag is not None:
            return tag.version, None

        raise NotFound(f"Branch or tag '{target}' not found")

    async def checkout(self, target: int | str) -> CheckoutResult:
        """
        Retrieve a stored document.

        ``target`` may be a version number, a branch name (which also
        becomes the active branch) or a tag name. The payload is verified
        against its checksum before a private copy is returned.
        """
        try:
            version, switch_to = self._resolve_target(target)
            document = self.store.read(version)
        except VersionControlError as e:
            return CheckoutResult.failed(e)

        if switch_to is not None:
            self.branches.switch_branch(switch_to)
        return CheckoutResult(success=True, document=document, version=version)

    # =========================================================================
    # Branches and Tags
    # =========================================================================

    async def create_branch(
        self,
        name: str,
        base_version: int | None = None,
        description: str = "",
    ) -> OperationResult:
        """Create a branch at ``base_version`` (default: head of the active branch)."""
        async with self._lock:
            try:
                self.branches.create_branch(name, base_version, description)
            except VersionControlError as e:
                return OperationResult.failed(e)
        return OperationResult(success=True)

    def switch_branch(self, name: str) -> OperationResult:
        """Make ``name`` the active branch; no payload is touched."""
        try:
            self.branches.switch_branch(name)
        except NotFound as e:
            return OperationResult.failed(e)
        return OperationResult(success=True)

    async def delete_branch(self, name: str) -> OperationResult:
        async with self._lock:
            try:
                self.branches.delete_branch(name)
            except VersionControlError as e:
                return OperationResult.failed(e)
        return OperationResult(success=True)

    async def create_tag(
        self,
        name: str,
        version: int,
        description: str = "",
        is_automated: bool = False,
    ) -> OperationResult:
        """Give ``version`` a named alias."""
        async with self._lock:
            try:
                self.tags.create_tag(name, version, description, is_automated)
            except VersionControlError as e:
                return OperationResult.failed(e)
        return OperationResult(success=True)

    async def delete_tag(self, name: str) -> OperationResult:
        async with self._lock:
            try:
                self.tags.delete_tag(name)
            except VersionControlError as e:
                return OperationResult.failed(e)
        return OperationResult(success=True)

    def get_branches(self) -> list[Branch]:
        return self.branches.list_branches()

    def get_tags(self) -> list[Tag]:
        """All tags, newest first."""
        return self.tags.list_tags()

    def get_current_branch(self) -> str:
        return self.branches.get_current_branch_name()

    # =========================================================================
    # Diff / Merge / History
    # =========================================================================

    def diff(self, from_version: int, to_version: int) -> DiffResult:
        """
        Structural diff between two stored versions.

        Diffs longer than ``max_diff_size`` changes are rejected.
        """
        try:
            from_doc = self.store.read(from_version)
            to_doc = self.store.read(to_version)
        except VersionControlError as e:
            return DiffResult.failed(e)

        try:
            changes = diff(from_doc, to_doc, max_changes=self.config.max_diff_size)
        except ValueError as e:
            return DiffResult.failed(LimitExceeded(str(e)))

        delta = self.store.get_info(to_version).size - self.store.get_info(from_version).size
        return DiffResult(
            success=True,
            diff=VersionDiff(
                from_version=from_version,
                to_version=to_version,
                changes=changes,
                added_size=max(delta, 0),
                removed_size=max(-delta, 0),
            ),
        )

    async def merge_branch(
        self,
        source: str,
        target: str | None = None,
        conflict_resolver: ConflictResolver | None = None,
    ) -> MergeResult:
        """
        Merge ``source`` into ``target`` (default: the active branch).

        ``conflict_resolver`` receives the list of conflicts and returns
        ``{path: value}``; it may be a coroutine function. Conflicts it does
        not resolve keep the target's value and are reported through
        ``MergeResult.unresolved_paths``. Nothing is committed on failure.
        """
        target = target or self.branches.get_current_branch_name()

        async with self._lock:
            plan = None
            try:
                plan = await self.merger.plan(source, target, conflict_resolver)
                version = self._commit_locked(
                    plan.merged_document,
                    f"Merge {source} into {target}",
                    "system",
                    [],
                    branch_name=target,
                    allow_protected=True,
                )
            except VersionControlError as e:
                logger.warning(f"Merge {source} -> {target} failed: {e}")
                return MergeResult(
                    success=False,
                    conflicts=plan.conflicts if plan else [],
                    message=str(e),
                    error=e,
                )
            except Exception as e:
                logger.error(f"Merge {source} -> {target} failed: {e}")
                error = MergeAborted(f"Merge failed: {e}")
                return MergeResult(success=False, message=str(error), error=error)

        result = MergeResult(
            success=True,
            target_version=version,
            conflicts=plan.conflicts,
            resolved_changes=diff(plan.target_document, plan.merged_document),
        )
        if result.is_partial:
            result.message = (
                f"Merged with {len(result.unresolved_paths)} unresolved conflict(s); "
                f"target values kept"
            )
            logger.warning(f"Merge {source} -> {target}: {result.message}")
        return result

    def get_version_history(
        self,
        query: VersionQuery | None = None,
        **criteria: Any,
    ) -> list[VersionInfo]:
        """
        List version metadata newest-first.

        Pass a VersionQuery or its fields as keyword arguments.
        """
        query = query or VersionQuery(**criteria)
        branch = self.branches.find_branch(query.branch) if query.branch else None
        return run_query(self.store.iter_infos(), query, branch)

    # =========================================================================
    # Retention
    # =========================================================================

    async def prune(self, now: datetime | None = None) -> RetentionReport:
        """Run one retention sweep immediately."""
        async with self._lock:
            return self.retention.sweep(now)

    async def _scheduled_sweep(self) -> None:
        report = await self.prune()
        if report:
            logger.info(
                f"Retention removed {len(report.removed_versions)} version(s) "
                f"and {len(report.removed_tags)} tag(s)"
            )

    # =========================================================================
    # Snapshot export / import
    # =========================================================================

    def export_snapshot(self, version: int) -> bytes:
        """
        Serialize one verified version for an external byte store.

        Raises:
            NotFound: The version does not exist.
            IntegrityFailure: The stored payload is corrupt.
        """
        document = self.store.read(version)
        envelope = {
            "format": SNAPSHOT_FORMAT,
            "info": self.store.get_info(version).to_dict(),
            "document": document,
        }
        return canonical_json(envelope).encode("utf-8")

    async def import_snapshot(
        self,
        blob: bytes,
        author: str | None = None,
        message: str | None = None,
    ) -> CommitResult:
        """Commit a previously exported snapshot onto the active branch."""
        try:
            envelope = json.loads(blob.decode("utf-8"))
            info = VersionInfo.from_dict(envelope["info"])
            document = envelope["document"]
        except (ValueError, KeyError, TypeError) as e:
            return CommitResult.failed(CommitFailure(f"Unreadable snapshot: {e}"))

        if not verify_checksum(document, info.checksum):
            return CommitResult.failed(
                IntegrityFailure(f"Snapshot of v{info.version} failed its integrity check")
            )

        return await self.commit(
            document,
            message or f"Import v{info.version}: {info.message}",
            author or info.author,
        )

    def to_index(self) -> dict[str, Any]:
        """Metadata of the whole engine (everything except payloads)."""
        return {
            "format": SNAPSHOT_FORMAT,
            "last_version": self.store.last_version,
            "current_branch": self.branches.get_current_branch_name(),
            "versions": [info.to_dict() for info in self.store.iter_infos()],
            "branches": [branch.to_dict() for branch in self.branches.list_branches()],
            "tags": [tag.to_dict() for tag in self.tags.list_tags()],
        }

    def restore_index(self, index: dict[str, Any], payloads: dict[int, Any]) -> None:
        """
        Replace engine state with a previously saved index and payloads.

        Versions whose payload is missing are skipped; checksums are checked
        on checkout as usual.
        """
        self.store.clear()
        for data in index.get("versions", []):
            info = VersionInfo.from_dict(data)
            if info.version not in payloads:
                logger.warning(f"Snapshot payload for v{info.version} missing, skipping")
                continue
            self.store.restore(info, payloads[info.version])
        self.store.set_last_version(index.get("last_version", 0))

        self.branches.restore(
            [Branch.from_dict(b) for b in index.get("branches", [])],
            index.get("current_branch", self.config.default_branch),
        )
        self.tags.restore(
            [t for t in (Tag.from_dict(d) for d in index.get("tags", [])) if self.store.has(t.version)]
        )
