"""Media library catalog: opaque item ids to video files."""

import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from audiopruner.config import LibraryConfig
from audiopruner.core.scanner import FileScanner
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)

_ITEM_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "audiopruner:item")


def item_id_for(path: Path) -> str:
    """Stable opaque id of a file path."""
    return uuid.uuid5(_ITEM_NAMESPACE, str(path.resolve())).hex


@dataclass(frozen=True)
class LibraryItem:
    """A video known to the library."""

    item_id: str
    name: str
    path: Path


class LibraryCatalog:
    """Resolve item ids to videos found under the configured library roots.

    The catalog is rebuilt lazily: a lookup miss triggers one rescan, so
    newly written files become addressable without a restart.
    """

    def __init__(self, config: LibraryConfig, scanner: Optional[FileScanner] = None):
        self.config = config
        self.scanner = scanner or FileScanner(config.extensions)
        self._items: dict[str, LibraryItem] = {}
        self._guard = threading.Lock()

    def refresh(self) -> int:
        """Rescan the library roots.

        Returns:
            Number of items found
        """
        roots = [Path(root) for root in self.config.roots]
        files = self.scanner.scan_roots(roots, recursive=self.config.recursive)
        items = {}
        for path in files:
            path = path.resolve()
            item = LibraryItem(item_id=item_id_for(path), name=path.stem, path=path)
            items[item.item_id] = item

        with self._guard:
            self._items = items

        logger.info("Library catalog refreshed", roots=self.config.roots, item_count=len(items))
        return len(items)

    def items(self) -> list[LibraryItem]:
        """All known items, sorted by path."""
        with self._guard:
            return sorted(self._items.values(), key=lambda item: str(item.path))

    def get_item(self, item_id: str) -> Optional[LibraryItem]:
        """Look up an item, rescanning once on a miss.

        Returns:
            LibraryItem, or None if no such item exists
        """
        with self._guard:
            item = self._items.get(item_id)
        if item is None:
            self.refresh()
            with self._guard:
                item = self._items.get(item_id)
        if item is not None and not item.path.is_file():
            logger.warning("Library item file is gone", item_id=item_id, path=str(item.path))
            return None
        return item
