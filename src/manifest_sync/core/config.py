"""Runtime configuration for mirrors, freshness windows and transports."""
from pathlib import Path
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from manifest_sync.core.errors import ConfigError

DEFAULT_HPC = "keeling_community"
MANIFEST_FILENAME = "manifest.json"


class SyncConfig(BaseModel):
    """Settings shared by the mirror store, the staleness oracle and the CLI."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    root_path: Path = Field(default=Path("data/repositories"), description="Root directory for local mirrors")
    manifest_ttl_seconds: float = Field(default=120.0, gt=0, description="Freshness window of manifest-only mirrors")
    git_timeout: int = Field(default=60, gt=0, description="Timeout for short git commands (seconds)")
    clone_timeout: int = Field(default=300, gt=0, description="Timeout for git clone (seconds)")
    http_timeout: int = Field(default=30, gt=0, description="Timeout for raw manifest downloads (seconds)")
    fallback_branch: str = Field(default="main", description="Branch used when the remote default cannot be resolved")
    default_hpc: str = Field(default=DEFAULT_HPC, description="Cluster assumed when a manifest lists none")
    raw_host_map: Dict[str, str] = Field(
        default_factory=lambda: {"github.com": "raw.githubusercontent.com"},
        description="Repository host -> raw-content host",
    )

    @field_validator("fallback_branch", "default_hpc")
    @classmethod
    def validate_nonempty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @property
    def manifests_root(self) -> Path:
        """Parent directory of the manifest-only mirrors."""
        return Path(self.root_path) / "manifests"

    @classmethod
    def load(cls, path: Path) -> "SyncConfig":
        """Load configuration from a JSON file.

        Raises:
            ConfigError: If the file is missing or does not validate
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            return cls.model_validate_json(path.read_text())
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    def save(self, path: Path) -> None:
        """Write configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))
