"""Version branch data structure."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any


@dataclass
class Branch:
    """
    A named, independently advancing line of versions.

    Attributes:
        name: Unique branch name (e.g., "main", "what-if-trade").
        base_version: Version the branch was forked from (None for an empty default branch).
        current_version: Head of the branch (None until the first commit).
        created: When the branch was created.
        last_update: When the head last moved.
        description: Free-form description.
        is_protected: Exempt from history truncation and pruning.
        versions: Version numbers on this branch, in commit order.
    """

    name: str
    base_version: int | None = None
    current_version: int | None = None
    created: datetime = field(default_factory=datetime.now)
    last_update: datetime = field(default_factory=datetime.now)
    description: str = ""
    is_protected: bool = False
    versions: list[int] = field(default_factory=list)

    def advance(self, version: int, max_versions: int) -> list[int]:
        """
        Move the head to ``version`` and record it in the history.

        Unprotected branches keep at most ``max_versions`` entries.

        Returns:
            Version numbers dropped from the front of the history.
        """
        self.current_version = version
        self.last_update = datetime.now()
        self.versions.append(version)

        if self.is_protected or len(self.versions) <= max_versions:
            return []
        dropped = self.versions[:-max_versions]
        self.versions = self.versions[-max_versions:]
        return dropped

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["created"] = self.created.isoformat()
        data["last_update"] = self.last_update.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Branch":
        """Create from dictionary."""
        for key in ("created", "last_update"):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])

        return cls(
            name=data["name"],
            base_version=data.get("base_version"),
            current_version=data.get("current_version"),
            created=data.get("created", datetime.now()),
            last_update=data.get("last_update", datetime.now()),
            description=data.get("description", ""),
            is_protected=data.get("is_protected", False),
            versions=list(data.get("versions", [])),
        )

    def __str__(self) -> str:
        """Human-readable representation."""
        head = f"v{self.current_version}" if self.current_version is not None else "empty"
        protected = " (protected)" if self.is_protected else ""
        return f"{self.name}{protected} -> {head}"
