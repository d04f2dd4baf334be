"""Slot rotation.

Rotating a generation shifts every occupied slot one index higher so
that slot 0 is free for a new backup. Indices are visited from the
highest retained index down to 0: slot ``i + 1`` has always been moved
out of the way before slot ``i`` is moved into it. Walking upwards
would overwrite slots that have not been promoted yet.

hourly.0 is the live mirror target, so it is snapshotted into hourly.1
rather than renamed.
"""

import logging
from dataclasses import dataclass

from snaprotate.core.errors import CorruptSlotError
from snaprotate.retention.policy import HOURLY, RetentionPolicy
from snaprotate.storage.backend import SnapshotBackend
from snaprotate.storage.slot_store import SlotStore

logger = logging.getLogger(__name__)


@dataclass
class RotationStep:
    """Outcome of rotating one index."""
    generation: str
    index: int
    action: str  # "move", "snapshot" or "skip"
    success: bool


def rotation_order(max_index: int) -> range:
    """Indices in the order they must be rotated: highest first."""
    return range(max_index, -1, -1)


class RotationEngine:
    def __init__(self, store: SlotStore, backend: SnapshotBackend,
                 policy: RetentionPolicy):
        self.store = store
        self.backend = backend
        self.policy = policy

    def rotate(self, generation: str) -> list[RotationStep]:
        """Shift the slots of ``generation`` up by one index.

        Missing indices are skipped. A failed move is logged and the
        remaining indices are still rotated. A slot that is not a
        snapshot raises CorruptSlotError.
        """
        steps: list[RotationStep] = []
        for index in rotation_order(self.policy.max_index(generation)):
            src = self.store.path_of(generation, index)
            dst = self.store.path_of(generation, index + 1)

            if not self.store.exists(generation, index):
                logger.debug("No %s, nothing to rotate", src.name)
                steps.append(RotationStep(generation, index, "skip", True))
                continue

            if not self.store.is_valid_snapshot(src):
                raise CorruptSlotError(f"{src} exists but is not a snapshot")

            if index == 0 and generation == HOURLY:
                action = "snapshot"
                ok = self.backend.snapshot_create(src, dst)
            else:
                action = "move"
                ok = self.backend.move(src, dst)

            if ok:
                logger.info("Rotated %s -> %s (%s)", src.name, dst.name, action)
            else:
                logger.error("Could not rotate %s -> %s, continuing", src.name, dst.name)
            steps.append(RotationStep(generation, index, action, ok))
        return steps
