"""Repository records consumed by the refresh pipeline."""
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

from manifest_sync.core.errors import ConfigError
from manifest_sync.mirror.handle import RepositoryHandle

logger = logging.getLogger(__name__)


class RepositoryStore(Protocol):
    """Where repository handles live and where sync times are recorded."""

    def find_repository(self, repository_id: str) -> Optional[RepositoryHandle]:
        ...

    def update_last_synced_at(self, repository_id: str, timestamp: datetime) -> None:
        ...


class RegistryDocument(BaseModel):
    """On-disk layout of the JSON registry."""

    schema_version: str = Field(default="repository_registry_v1")
    repositories: Dict[str, RepositoryHandle] = Field(default_factory=dict)


class JsonRepositoryRegistry:
    """RepositoryStore backed by a single JSON file.

    The file is re-read on every lookup so several processes can share it;
    writes rewrite the whole document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> RegistryDocument:
        if not self.path.exists():
            return RegistryDocument()
        try:
            return RegistryDocument.model_validate_json(self.path.read_text())
        except ValidationError as e:
            raise ConfigError(f"Invalid repository registry {self.path}: {e}") from e

    def _save(self, document: RegistryDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".part")
        tmp_path.write_text(document.model_dump_json(indent=2))
        tmp_path.replace(self.path)

    def find_repository(self, repository_id: str) -> Optional[RepositoryHandle]:
        return self._load().repositories.get(repository_id)

    def list_repositories(self) -> List[RepositoryHandle]:
        return sorted(self._load().repositories.values(), key=lambda handle: handle.id)

    def register(self, handle: RepositoryHandle) -> RepositoryHandle:
        """Add or replace a repository record."""
        with self._lock:
            document = self._load()
            document.repositories[handle.id] = handle
            self._save(document)
        logger.info(f"Registered repository {handle.id} -> {handle.address}")
        return handle

    def update_last_synced_at(self, repository_id: str, timestamp: datetime) -> None:
        with self._lock:
            document = self._load()
            handle = document.repositories.get(repository_id)
            if handle is None:
                logger.warning(f"Not recording sync time of unregistered repository {repository_id}")
                return
            document.repositories[repository_id] = handle.model_copy(update={"last_synced_at": timestamp})
            self._save(document)
