"""History queries over version metadata."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from statevc.vc.branch import Branch
from statevc.vc.version import VersionInfo


@dataclass
class VersionQuery:
    """
    Filter for version history.

    All set criteria must match. ``tags`` matches versions carrying any of
    the given tags. Pagination is applied after filtering and sorting;
    a ``limit`` of None or 0 means no limit.
    """

    branch: str | None = None
    from_version: int | None = None
    to_version: int | None = None
    author: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    tags: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int = 0


def run_query(
    infos: Iterable[VersionInfo],
    query: VersionQuery,
    branch: Branch | None = None,
) -> list[VersionInfo]:
    """
    Filter, sort newest-first and paginate version metadata.

    Args:
        infos: Candidate versions.
        query: Filter criteria.
        branch: Resolved branch for ``query.branch`` (None if it does not exist).
    """
    results = list(infos)

    if query.branch is not None:
        members = set(branch.versions) if branch else set()
        results = [v for v in results if v.version in members]

    if query.from_version is not None:
        results = [v for v in results if v.version >= query.from_version]

    if query.to_version is not None:
        results = [v for v in results if v.version <= query.to_version]

    if query.author:
        results = [v for v in results if v.author == query.author]

    if query.from_date is not None:
        results = [v for v in results if v.timestamp >= query.from_date]

    if query.to_date is not None:
        results = [v for v in results if v.timestamp <= query.to_date]

    if query.tags:
        wanted = set(query.tags)
        results = [v for v in results if wanted.intersection(v.tags)]

    results.sort(key=lambda v: v.version, reverse=True)

    if query.offset:
        results = results[query.offset:]

    if query.limit:
        results = results[:query.limit]

    return results
