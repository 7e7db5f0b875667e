from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict

from .models import ARCHIVE_EXTENSION

logger = logging.getLogger(__name__)


class InventoryError(OSError):
    pass


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: Path

    def size(self) -> int:
        return self.path.stat().st_size

    def open(self) -> BinaryIO:
        return self.path.open("rb")


def scan_directory(path: str | Path, extension: str = ARCHIVE_EXTENSION) -> Dict[str, FileEntry]:
    directory = Path(path)
    suffix = f".{extension}"
    entries: Dict[str, FileEntry] = {}
    try:
        for item in directory.iterdir():
            if item.suffix != suffix or not item.is_file():
                continue
            entries[item.name] = FileEntry(name=item.name, path=item)
    except OSError as exc:
        raise InventoryError(f"could not read dir {directory}: {exc}") from exc

    logger.info(
        json.dumps(
            {"event": "inventory_done", "dir": str(directory), "files": len(entries)},
            separators=(",", ":"),
        )
    )
    return entries
