"""Slot naming and lookup.

Slots live directly under the backup root::

    backup_root/
    +-- hourly.0/
    +-- hourly.1/
    +-- daily.0/
    +-- ...

There is no metadata file; slot state is read from the directory tree
and from the backend's subvolume check.
"""

import logging
import os
import re
from pathlib import Path

from snaprotate.retention.policy import GENERATIONS, check_generation
from snaprotate.storage.backend import SnapshotBackend

logger = logging.getLogger(__name__)

SLOT_NAME_RE = re.compile(r"^(?P<generation>[a-z]+)\.(?P<index>0|[1-9]\d*)$")


def parse_slot_name(name: str) -> tuple[str, int]:
    """Split ``"daily.2"`` into ``("daily", 2)``."""
    match = SLOT_NAME_RE.match(name)
    if not match or match.group("generation") not in GENERATIONS:
        raise ValueError(f"Not a slot name: {name!r}")
    return match.group("generation"), int(match.group("index"))


class SlotStore:
    """Resolves (generation, index) pairs to paths under the backup root."""

    def __init__(self, root: Path, backend: SnapshotBackend):
        self.root = Path(root)
        self.backend = backend

    def path_of(self, generation: str, index: int) -> Path:
        check_generation(generation)
        if index < 0:
            raise ValueError(f"Slot index must be >= 0, got {index}")
        return self.root / f"{generation}.{index}"

    def exists(self, generation: str, index: int) -> bool:
        # a dangling symlink still blocks the slot name
        return os.path.lexists(self.path_of(generation, index))

    def is_valid_snapshot(self, path: Path) -> bool:
        return self.backend.is_snapshot(Path(path))

    def indices(self, generation: str) -> list[int]:
        """Occupied indices of ``generation``, ascending."""
        check_generation(generation)
        if not self.root.is_dir():
            return []
        found = []
        for child in self.root.iterdir():
            match = SLOT_NAME_RE.match(child.name)
            if match and match.group("generation") == generation:
                found.append(int(match.group("index")))
        return sorted(found)
