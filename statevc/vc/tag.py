"""Version tag data structure."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any


@dataclass
class Tag:
    """
    A named alias for one version.

    Automated tags are system-generated and may be pruned by age;
    user tags are never pruned.
    """

    name: str
    version: int
    created: datetime = field(default_factory=datetime.now)
    description: str = ""
    is_automated: bool = False
    # False when the version already carried the label before tagging
    owns_label: bool = True

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created"] = self.created.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tag":
        created = data.get("created")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return cls(
            name=data["name"],
            version=data["version"],
            created=created or datetime.now(),
            description=data.get("description", ""),
            is_automated=data.get("is_automated", False),
            owns_label=data.get("owns_label", True),
        )

    def __str__(self) -> str:
        return f"{self.name} -> v{self.version}"
