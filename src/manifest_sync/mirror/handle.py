"""Repository handle and mirror state models."""
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MirrorKind(str, Enum):
    """Kinds of local mirror a repository can have."""

    FULL = "full"
    MANIFEST = "manifest"


class RepositoryHandle(BaseModel):
    """Identifies a remote repository publishing a manifest.

    The handle is immutable: a refresh never edits it in place. The sync
    timestamp is written back through the repository store instead.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "hello_world",
                "address": "https://github.com/cybergis/cybergis-compute-hello-world.git",
                "sha": None,
                "last_synced_at": "2026-02-27T10:30:00+00:00",
            }
        },
    )

    id: str = Field(..., description="Stable repository identifier")
    address: str = Field(..., description="Clone URL or local path of the repository")
    sha: Optional[str] = Field(default=None, description="Pinned revision overriding branch tracking")
    last_synced_at: Optional[datetime] = Field(default=None, description="Time of the last successful refresh")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Ensure the id is usable as a single directory name."""
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"repository id must be a plain directory name; got '{v}'")
        return v

    @field_validator("sha")
    @classmethod
    def validate_sha(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty pinned revision as unpinned."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def pinned(self) -> bool:
        return self.sha is not None


class MirrorState(BaseModel):
    """Snapshot of a local mirror as found on disk."""

    repository_id: str
    kind: MirrorKind
    path: Path
    exists_locally: bool = False
    local_revision: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
