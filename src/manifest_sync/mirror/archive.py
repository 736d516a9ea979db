"""Housekeeping for archives left next to mirrors by packaging steps."""
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class FileArchive:
    """Locates and removes the ``<mirror>.zip`` archive built from a mirror."""

    suffix = ".zip"

    def archive_path_for(self, mirror_path: Path) -> Path:
        mirror_path = Path(mirror_path)
        return mirror_path.with_name(mirror_path.name + self.suffix)

    def remove_stale_archive(self, mirror_path: Path) -> bool:
        """Delete the archive of mirror_path if one exists.

        Returns:
            True if an archive was removed
        """
        archive = self.archive_path_for(mirror_path)
        if not archive.is_file():
            return False
        archive.unlink()
        logger.info(f"Removed stale archive {archive}")
        return True
