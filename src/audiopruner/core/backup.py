"""Backup and crash-safe restore of media files."""

import os
import shutil
from pathlib import Path

from audiopruner.errors import BackupAlreadyExists, NotFound
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)

TOMBSTONE_SUFFIX = ".origdelete"


def tombstone_path(original_path: Path) -> Path:
    """Temporary name the original is moved to during a restore."""
    return original_path.with_name(original_path.name + TOMBSTONE_SUFFIX)


class BackupManager:
    """Copy originals aside and put them back.

    Restore is a three-step rename protocol:

    1. original -> ``<original>.origdelete`` (tombstone)
    2. backup -> original
    3. delete the tombstone (best effort)

    A crash after step 1 leaves both tombstone and backup on disk, and a
    later restore resumes at step 2. A crash after step 2 only leaves a
    stale tombstone.
    """

    def backup(self, source_path: Path, backup_path: Path) -> Path:
        """Copy ``source_path`` to ``backup_path``.

        The target is created exclusively, so an existing file is never
        overwritten.

        Args:
            source_path: File to copy
            backup_path: Destination

        Returns:
            The backup path

        Raises:
            NotFound: If the source does not exist
            BackupAlreadyExists: If the destination already exists
        """
        if not source_path.is_file():
            raise NotFound("source", source_path)

        try:
            with open(source_path, "rb") as src, open(backup_path, "xb") as dst:
                try:
                    shutil.copyfileobj(src, dst, length=1024 * 1024)
                except OSError:
                    dst.close()
                    backup_path.unlink(missing_ok=True)
                    raise
        except FileExistsError as e:
            logger.warning("Backup target exists", source=str(source_path), backup=str(backup_path))
            raise BackupAlreadyExists(backup_path) from e

        shutil.copystat(source_path, backup_path)
        logger.info("Backup created", source=str(source_path), backup=str(backup_path))
        return backup_path

    def restore(self, original_path: Path, backup_path: Path) -> None:
        """Replace ``original_path`` with ``backup_path``.

        Raises:
            NotFound: If the backup is missing, or the original is missing
                without a tombstone to resume from
        """
        tomb = tombstone_path(original_path)

        if not backup_path.is_file():
            raise NotFound("backup", backup_path)

        if original_path.exists():
            self._move_aside(original_path, tomb)
        elif tomb.exists():
            logger.warning(
                "Resuming interrupted restore",
                original=str(original_path),
                tombstone=str(tomb),
            )
        else:
            raise NotFound("original", original_path)

        self._move_into_place(backup_path, original_path)
        self._remove_tombstone(tomb)

        logger.info("Restored from backup", original=str(original_path), backup=str(backup_path))

    def _move_aside(self, original_path: Path, tomb: Path) -> None:
        # Replaces a stale tombstone left by an earlier completed restore
        os.replace(original_path, tomb)

    def _move_into_place(self, backup_path: Path, original_path: Path) -> None:
        os.rename(backup_path, original_path)

    def _remove_tombstone(self, tomb: Path) -> None:
        try:
            tomb.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete tombstone", tombstone=str(tomb), error=str(e))
