"""Creation of a new slot 0.

hourly.0 is filled from the configured sources. Every coarser
generation is fed by cloning the newest existing slot of the generation
before it (hourly.0 -> daily.0, daily.0 -> weekly.0, ...).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from snaprotate.core.errors import (
    BackupError,
    ConfigError,
    MissingPredecessorError,
    SlotCollisionError,
)
from snaprotate.retention.policy import HOURLY, RetentionPolicy
from snaprotate.storage.backend import SnapshotBackend
from snaprotate.storage.slot_store import SlotStore
from snaprotate.storage.sources import Source, SourceResult

logger = logging.getLogger(__name__)


@dataclass
class CreationResult:
    generation: str
    slot: Path
    promoted_from: Path | None = None
    sources: list[SourceResult] = field(default_factory=list)

    @property
    def failed_sources(self) -> list[SourceResult]:
        return [r for r in self.sources if not r.success]


class BackupCreator:
    def __init__(self, store: SlotStore, backend: SnapshotBackend,
                 policy: RetentionPolicy, sources: list[Source]):
        self.store = store
        self.backend = backend
        self.policy = policy
        self.sources = sources

    def create(self, generation: str) -> CreationResult:
        if generation == HOURLY:
            return self._create_hourly()
        return self._promote(generation)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _ensure_root(self):
        if not self.store.root.is_dir() and not self.backend.make_dir(self.store.root):
            raise BackupError(f"Could not create backup root {self.store.root}")

    def init(self) -> Path:
        """Create the first hourly slot as an empty writable volume."""
        slot = self.store.path_of(HOURLY, 0)
        if self.store.exists(HOURLY, 0):
            raise SlotCollisionError(f"{slot} already exists")
        self._ensure_root()
        if not self.backend.create_volume(slot):
            raise BackupError(f"Could not create {slot}")
        logger.info("Initialized %s", slot)
        return slot

    # ------------------------------------------------------------------
    # hourly
    # ------------------------------------------------------------------

    def _create_hourly(self) -> CreationResult:
        if not self.sources:
            raise ConfigError("No backup sources configured")

        slot = self.store.path_of(HOURLY, 0)
        if not self.store.exists(HOURLY, 0):
            logger.info("%s missing, creating it", slot.name)
            self._ensure_root()
            if not self.backend.create_volume(slot):
                raise BackupError(f"Could not create {slot}")

        result = CreationResult(generation=HOURLY, slot=slot)
        for source in self.sources:
            target = slot / source.dst
            logger.info("Backing up %s (%s) -> %s", source.src, source.protocol, target)
            ok = source.materialize(target, self.backend)
            if not ok:
                logger.warning("Source %s (%s) failed, continuing with the others",
                               source.src, source.protocol)
            result.sources.append(
                SourceResult(source.protocol, source.src, source.dst, ok)
            )

        failed = len(result.failed_sources)
        logger.info("%s updated from %d source(s), %d failed",
                    slot.name, len(result.sources), failed)
        return result

    # ------------------------------------------------------------------
    # daily / weekly / monthly / yearly
    # ------------------------------------------------------------------

    def newest_slot(self, generation: str) -> Path | None:
        """First existing slot of ``generation`` scanning up from index 0."""
        for index in range(self.policy.max_index(generation) + 1):
            if self.store.exists(generation, index):
                return self.store.path_of(generation, index)
        return None

    def _promote(self, generation: str) -> CreationResult:
        predecessor = self.policy.predecessor(generation)
        source = self.newest_slot(predecessor)
        if source is None:
            raise MissingPredecessorError(
                f"No {predecessor} slot available to create {generation}.0"
            )
        # The predecessor is not required to be a valid snapshot; flag it only
        if not self.store.is_valid_snapshot(source):
            logger.warning("%s does not look like a snapshot, cloning it anyway",
                           source)

        target = self.store.path_of(generation, 0)
        if self.store.exists(generation, 0):
            if not self.backend.dry_run:
                raise SlotCollisionError(f"{target} already exists")
            # rotation was only rehearsed, so the old slot 0 is still here
            logger.debug("%s still present in dry-run", target.name)

        if not self.backend.snapshot_create(source, target):
            raise BackupError(f"Could not snapshot {source} into {target}")
        logger.info("Promoted %s -> %s", source.name, target.name)
        return CreationResult(generation=generation, slot=target, promoted_from=source)
