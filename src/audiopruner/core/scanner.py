"""File scanner for discovering video files."""

import re
from pathlib import Path
from typing import Iterable, List

from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)

# Backups written by the remuxer are not library items
_BACKUP_NAME = re.compile(r"\.bak-\d{14}\.[^.]+$")


class FileScanner:
    """Scan directories for video files."""

    SUPPORTED_EXTENSIONS = {".mkv", ".mp4", ".m4v", ".mov", ".avi", ".webm"}

    def __init__(self, extensions: Iterable[str] | None = None):
        """Initialize scanner.

        Args:
            extensions: File extensions to include (default: SUPPORTED_EXTENSIONS)
        """
        if extensions is None:
            extensions = self.SUPPORTED_EXTENSIONS

        # Normalize extensions (ensure they start with dot and are lowercase)
        self.extensions = {
            ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions
        }

    def is_candidate(self, path: Path) -> bool:
        """Whether a file looks like a library video (not a backup)."""
        return path.suffix.lower() in self.extensions and not _BACKUP_NAME.search(path.name)

    def scan(self, path: Path, recursive: bool = True) -> List[Path]:
        """Scan a path for video files.

        Args:
            path: Path to scan (file or directory)
            recursive: If True, scan subdirectories recursively

        Returns:
            List of video file paths, sorted by path

        Raises:
            FileNotFoundError: If path doesn't exist
            ValueError: If path is not a file or directory
        """
        if not path.exists():
            raise FileNotFoundError(f"Path not found: {path}")

        if path.is_file():
            if self.is_candidate(path):
                return [path]
            logger.debug("File skipped", file=str(path), extension=path.suffix)
            return []

        if not path.is_dir():
            raise ValueError(f"Path is neither a file nor a directory: {path}")

        candidates = path.rglob("*") if recursive else path.glob("*")
        files = sorted(p for p in candidates if p.is_file() and self.is_candidate(p))

        logger.info(
            "Directory scan complete",
            directory=str(path),
            recursive=recursive,
            total_files=len(files),
        )

        return files

    def scan_roots(self, roots: Iterable[Path], recursive: bool = True) -> List[Path]:
        """Scan several library roots, skipping any that are missing.

        Returns:
            De-duplicated, sorted list of video files
        """
        files: set[Path] = set()
        for root in roots:
            try:
                files.update(self.scan(root, recursive=recursive))
            except (FileNotFoundError, ValueError) as e:
                logger.warning("Library root skipped", root=str(root), error=str(e))
        return sorted(files)
