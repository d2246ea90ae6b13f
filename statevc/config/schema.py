"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class VersionControlConfig(BaseModel):
    """Version-control engine configuration (fixed at construction)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    max_versions_per_branch: int = 50  # History kept per unprotected branch
    enable_auto_tagging: bool = True  # Derive round/game-end/bankruptcy/weekend labels
    compression_threshold: int = 1024  # Bytes; advisory, used by blob stores
    cleanup_interval_ms: int = 60000  # Retention task period (0 = disabled)
    max_branches: int = 10
    default_branch: str = "main"
    enable_branch_protection: bool = False  # Protect the default branch
    max_diff_size: int = 10240  # Max changes returned by a version diff
    retention_max_age_days: float = 30.0  # Age pruning threshold
    block_commits_to_protected: bool = False  # Reject direct commits to protected branches

    @field_validator("max_versions_per_branch", "max_branches", "max_diff_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must allow at least one item."""
        if v < 1:
            raise ValueError("Limit must be at least 1")
        return v

    @field_validator("compression_threshold", "cleanup_interval_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must be non-negative")
        return v

    @field_validator("retention_max_age_days")
    @classmethod
    def validate_age(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("retention_max_age_days must be positive")
        return v

    @field_validator("default_branch")
    @classmethod
    def validate_branch_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("default_branch must not be empty")
        return v.strip()


class Config(BaseSettings):
    """Root configuration for statevc."""

    model_config = SettingsConfigDict(env_prefix="STATEVC_", env_nested_delimiter="__")

    workspace: str = "~/.statevc/workspace"
    version_control: VersionControlConfig = Field(default_factory=VersionControlConfig)

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.workspace).expanduser()
