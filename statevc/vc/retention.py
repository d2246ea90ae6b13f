"""
Retention - pruning of old or excess versions and tags.

Two independent prunings are performed:
- History truncation: unprotected branches keep at most a configured
  number of versions; dropped versions are deleted once nothing else
  refers to them.
- Age pruning: versions and automated tags older than a threshold are
  deleted unless they are protected.

Branch heads and versions referenced by user tags are never deleted.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from statevc.vc.branches import BranchManager
from statevc.vc.store import VersionStore
from statevc.vc.tags import TagManager


PROTECTED_TAG = "protected"


@dataclass
class RetentionReport:
    """What a retention pass removed."""

    removed_versions: list[int] = field(default_factory=list)
    removed_tags: list[str] = field(default_factory=list)

    def merge(self, other: "RetentionReport") -> None:
        self.removed_versions.extend(other.removed_versions)
        self.removed_tags.extend(other.removed_tags)

    def __bool__(self) -> bool:
        return bool(self.removed_versions or self.removed_tags)


class Retention:
    """Applies retention rules to one engine's store, branches and tags."""

    def __init__(
        self,
        store: VersionStore,
        branches: BranchManager,
        tags: TagManager,
        max_versions_per_branch: int,
        max_age: timedelta,
    ):
        self.store = store
        self.branches = branches
        self.tags = tags
        self.max_versions_per_branch = max_versions_per_branch
        self.max_age = max_age

    def _is_protected(self, version: int) -> bool:
        if version in self.branches.heads() or version in self.tags.pinned_versions():
            return True
        info = self.store.get_info(version)
        return PROTECTED_TAG in info.tags

    def _remove_version(self, version: int, report: RetentionReport) -> None:
        self.store.remove(version)
        self.branches.forget_version(version)
        report.removed_versions.append(version)
        report.removed_tags.extend(self.tags.drop_for_version(version))

    def truncate_branches(self) -> list[int]:
        """Trim over-long unprotected branch histories; returns dropped versions."""
        dropped: list[int] = []
        limit = self.max_versions_per_branch
        for branch in self.branches.list_branches():
            if branch.is_protected or len(branch.versions) <= limit:
                continue
            dropped.extend(branch.versions[:-limit])
            branch.versions = branch.versions[-limit:]
        return dropped

    def collect(self, candidates: Iterable[int]) -> RetentionReport:
        """
        Delete dropped versions that nothing refers to any more.

        A candidate survives if another branch still lists it, it is a
        head, a user tag points at it, or it carries the protected label.
        """
        report = RetentionReport()
        referenced = self.branches.referenced_versions()

        for version in dict.fromkeys(candidates):
            try:
                if not self.store.has(version) or version in referenced:
                    continue
                if self._is_protected(version):
                    continue
                self._remove_version(version, report)
            except Exception as e:
                logger.warning(f"Retention skipped v{version}: {e}")

        if report.removed_versions:
            logger.debug(f"Retention removed truncated versions {report.removed_versions}")
        return report

    def enforce_limits(self, dropped: Iterable[int] = ()) -> RetentionReport:
        """Truncate branch histories and collect everything dropped."""
        candidates = list(dropped) + self.truncate_branches()
        return self.collect(candidates)

    def prune_by_age(self, now: datetime | None = None) -> RetentionReport:
        """Delete versions and automated tags older than the age threshold."""
        now = now or datetime.now()
        cutoff = now - self.max_age
        report = RetentionReport()

        old_versions = [
            info.version for info in self.store.iter_infos()
            if info.timestamp < cutoff
        ]
        for version in old_versions:
            try:
                if not self.store.has(version) or self._is_protected(version):
                    continue
                self._remove_version(version, report)
            except Exception as e:
                logger.warning(f"Retention skipped v{version}: {e}")

        for tag in self.tags.list_tags():
            if not tag.is_automated or tag.created >= cutoff:
                continue
            try:
                self.tags.delete_tag(tag.name)
                report.removed_tags.append(tag.name)
            except Exception as e:
                logger.warning(f"Retention skipped tag '{tag.name}': {e}")

        if report:
            logger.debug(
                f"Age pruning removed {len(report.removed_versions)} version(s) "
                f"and {len(report.removed_tags)} tag(s) older than {cutoff.isoformat()}"
            )
        return report

    def sweep(self, now: datetime | None = None) -> RetentionReport:
        """Run both prunings."""
        report = self.enforce_limits()
        report.merge(self.prune_by_age(now))
        return report


class RetentionTask:
    """
    Periodic background retention.

    Runs ``sweep`` every ``interval_s`` seconds on the running event loop.
    The task belongs to its engine: it is started with it and must be
    stopped at teardown.
    """

    def __init__(self, sweep: Callable[[], Awaitable[Any]], interval_s: float):
        self._sweep = sweep
        self.interval_s = interval_s
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Schedule the task on the running loop.

        Returns:
            True if the task is running after the call. False when the
            interval is disabled or no event loop is running yet.
        """
        if self.interval_s <= 0:
            return False
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, retention task deferred until start()")
            return False
        self._task = loop.create_task(self._run())
        return True

    async def _run(self) -> None:
        logger.debug(f"Retention task started (every {self.interval_s:.3f}s)")
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self._sweep()
            except Exception as e:
                logger.error(f"Retention sweep failed: {e}")

    async def stop(self) -> None:
        """Cancel the task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Retention task stopped")
