"""Removal of slots beyond a generation's retained count."""

import logging
from pathlib import Path

from snaprotate.core.errors import CorruptSlotError
from snaprotate.retention.policy import RetentionPolicy
from snaprotate.storage.backend import SnapshotBackend
from snaprotate.storage.slot_store import SlotStore

logger = logging.getLogger(__name__)


class PruningEngine:
    def __init__(self, store: SlotStore, backend: SnapshotBackend,
                 policy: RetentionPolicy):
        self.store = store
        self.backend = backend
        self.policy = policy

    def victims(self, generation: str) -> list[int]:
        """Occupied indices above the retained range, highest first."""
        limit = self.policy.max_index(generation)
        return sorted((i for i in self.store.indices(generation) if i > limit),
                      reverse=True)

    def prune(self, generation: str) -> list[Path]:
        """Delete every slot of ``generation`` past its retained count.

        Returns the paths deleted (or, in dry-run, that would have been).
        Raises CorruptSlotError instead of deleting a directory that is
        not a snapshot.
        """
        victims = self.victims(generation)
        if not victims:
            logger.debug("Nothing to prune in %s", generation)
            return []

        removed: list[Path] = []
        for index in victims:
            path = self.store.path_of(generation, index)
            if not self.store.is_valid_snapshot(path):
                raise CorruptSlotError(
                    f"Refusing to delete {path}: not a snapshot"
                )
            if self.backend.snapshot_delete(path):
                logger.info("Pruned %s", path.name)
                removed.append(path)
            else:
                logger.error("Failed to prune %s", path)
        return removed
