"""
Git-like version control for game-state documents.

This module provides a versioned, traceable history of a game state,
supporting:
- Immutable, checksummed snapshots with global version numbers
- Named branches and tags
- Structural diffs between snapshots
- Three-way merges with caller-supplied conflict resolution
- Background retention of old snapshots
"""

from statevc.vc.branch import Branch
from statevc.vc.diff import Change, VersionDiff, apply_changes, diff
from statevc.vc.engine import StateVersionControl
from statevc.vc.errors import (
    AlreadyExists,
    CommitFailure,
    IntegrityFailure,
    LimitExceeded,
    MergeAborted,
    NotFound,
    VersionControlError,
)
from statevc.vc.merge import MergeConflict, MergeResult, prefer_source, prefer_target
from statevc.vc.query import VersionQuery
from statevc.vc.tag import Tag
from statevc.vc.version import VersionInfo

__all__ = [
    "StateVersionControl",
    "VersionInfo",
    "Branch",
    "Tag",
    "Change",
    "VersionDiff",
    "VersionQuery",
    "MergeConflict",
    "MergeResult",
    "diff",
    "apply_changes",
    "prefer_source",
    "prefer_target",
    "VersionControlError",
    "NotFound",
    "AlreadyExists",
    "LimitExceeded",
    "IntegrityFailure",
    "MergeAborted",
    "CommitFailure",
]
