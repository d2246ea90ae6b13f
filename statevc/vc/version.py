"""Version metadata data structure."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any

from statevc.vc.hash import compute_hash


@dataclass
class VersionInfo:
    """
    Metadata for one committed snapshot.

    Similar to a git commit, each version points to the version it was
    committed on top of. The payload itself lives in the version store,
    separate from this record, so history can be listed cheaply.

    Attributes:
        version: Global, strictly increasing version number.
        branch_name: Branch the version was committed to.
        author: Who made the commit.
        message: Human-readable description.
        checksum: SHA256 digest of the payload.
        size: Size of the canonical payload in bytes.
        parent_version: Head of the branch at commit time (None for the first commit).
        timestamp: When the version was created.
        tags: Labels attached at commit time or by explicit tagging.
        id: Content-addressable hash (computed automatically).
    """

    version: int
    branch_name: str
    author: str
    message: str
    checksum: str
    size: int
    parent_version: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    tags: list[str] = field(default_factory=list)

    # Content-addressable ID (computed after init)
    id: str = field(default="", init=False)

    def __post_init__(self) -> None:
        """Compute content-addressable ID after initialization."""
        if not self.id:
            self.id = self._compute_id()

    def _compute_id(self) -> str:
        content = {
            "version": self.version,
            "branch": self.branch_name,
            "checksum": self.checksum,
            "timestamp": self.timestamp.isoformat(),
        }
        return compute_hash(content)

    def add_tag(self, name: str) -> None:
        if name not in self.tags:
            self.tags.append(name)

    def remove_tag(self, name: str) -> None:
        if name in self.tags:
            self.tags.remove(name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VersionInfo":
        """Create from dictionary."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)

        info = cls(
            version=data["version"],
            branch_name=data["branch_name"],
            author=data.get("author", ""),
            message=data.get("message", ""),
            checksum=data["checksum"],
            size=data.get("size", 0),
            parent_version=data.get("parent_version"),
            timestamp=timestamp or datetime.now(),
            tags=list(data.get("tags", [])),
        )
        # Restore original ID if present
        if data.get("id"):
            info.id = data["id"]
        return info

    def __str__(self) -> str:
        """Human-readable representation."""
        return f"v{self.version} [{self.branch_name}] {self.message}"

    def __repr__(self) -> str:
        return f"VersionInfo(version={self.version}, id={self.id[:8]}..., branch={self.branch_name})"
