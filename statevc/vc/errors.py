"""Error taxonomy and structured operation results."""

from dataclasses import dataclass
from typing import Any


class VersionControlError(Exception):
    """Base class for all version-control failures."""

    kind = "error"


class NotFound(VersionControlError):
    """A branch, version or tag does not exist."""

    kind = "not_found"


class AlreadyExists(VersionControlError):
    """A branch or tag name is already taken."""

    kind = "already_exists"


class LimitExceeded(VersionControlError):
    """A configured ceiling (branches, diff size) was reached."""

    kind = "limit_exceeded"


class IntegrityFailure(VersionControlError):
    """Stored payload no longer matches its checksum."""

    kind = "integrity_failure"


class MergeAborted(VersionControlError):
    """The merge could not complete and nothing was committed."""

    kind = "merge_aborted"


class CommitFailure(VersionControlError):
    """The commit could not be recorded; no state was changed."""

    kind = "commit_failure"


@dataclass
class OperationResult:
    """
    Outcome of an engine operation.

    Engine commands never raise for expected failures; they return a result
    carrying the error so callers can present recoverable feedback.
    """

    success: bool
    error: VersionControlError | None = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def message(self) -> str | None:
        """Human-readable error message, if any."""
        return str(self.error) if self.error is not None else None

    def unwrap(self) -> "OperationResult":
        """Raise the carried error, or return self on success."""
        if self.error is not None:
            raise self.error
        return self

    @classmethod
    def failed(cls, error: VersionControlError, **fields: Any) -> "OperationResult":
        return cls(success=False, error=error, **fields)


@dataclass
class CommitResult(OperationResult):
    version: int | None = None


@dataclass
class CheckoutResult(OperationResult):
    document: Any = None
    version: int | None = None
