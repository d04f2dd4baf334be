"""Rotation cycle orchestration.

Usage::

    settings = load_settings("/etc/snaprotate/config.json")
    controller = build_controller(settings, Executor(dry_run=False))
    controller.run_cycle("hourly")
    controller.remove("daily.2")
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from snaprotate.core.config import Settings
from snaprotate.core.errors import CorruptSlotError
from snaprotate.retention.creation import BackupCreator, CreationResult
from snaprotate.retention.policy import GENERATIONS, RetentionPolicy, check_generation
from snaprotate.retention.pruning import PruningEngine
from snaprotate.retention.rotation import RotationEngine, RotationStep
from snaprotate.storage.backend import BtrfsBackend, SnapshotBackend
from snaprotate.storage.executor import Executor
from snaprotate.storage.slot_store import SlotStore, parse_slot_name
from snaprotate.storage.sources import parse_sources

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """Everything one cycle did to a generation."""
    generation: str
    pruned: list[Path] = field(default_factory=list)
    rotated: list[RotationStep] = field(default_factory=list)
    created: CreationResult | None = None


class LifecycleController:
    """Runs prune -> rotate -> prune -> create for one generation."""

    def __init__(self, store: SlotStore, backend: SnapshotBackend,
                 policy: RetentionPolicy, creator: BackupCreator):
        self.store = store
        self.backend = backend
        self.policy = policy
        self.pruner = PruningEngine(store, backend, policy)
        self.rotator = RotationEngine(store, backend, policy)
        self.creator = creator

    def run_cycle(self, generation: str) -> CycleResult:
        """One best-effort pass; fatal errors propagate to the caller."""
        check_generation(generation)
        logger.info("Starting %s cycle in %s", generation, self.store.root)
        result = CycleResult(generation=generation)
        result.pruned.extend(self.pruner.prune(generation))
        result.rotated = self.rotator.rotate(generation)
        # rotation may have pushed the oldest slot past the retained count
        result.pruned.extend(self.pruner.prune(generation))
        result.created = self.creator.create(generation)
        logger.info("Finished %s cycle", generation)
        return result

    def init(self) -> Path:
        return self.creator.init()

    def remove(self, slot_name: str) -> bool:
        """Delete one slot by name; False if it does not exist."""
        generation, index = parse_slot_name(slot_name)
        path = self.store.path_of(generation, index)
        if not self.store.exists(generation, index):
            logger.warning("%s does not exist, nothing to remove", path)
            return False
        if not self.store.is_valid_snapshot(path):
            raise CorruptSlotError(f"Refusing to delete {path}: not a snapshot")
        ok = self.backend.snapshot_delete(path)
        if ok:
            logger.info("Removed %s", path.name)
        return ok

    def status(self) -> dict[str, list[int]]:
        return {g: self.store.indices(g) for g in GENERATIONS}


def build_controller(settings: Settings, executor: Executor,
                     backend: SnapshotBackend | None = None) -> LifecycleController:
    """Wire store, engines and sources from settings.

    ``backend`` defaults to btrfs; tests pass their own.
    """
    if backend is None:
        backend = BtrfsBackend(executor)
    policy = RetentionPolicy(settings.retention)
    store = SlotStore(settings.backup_root, backend)
    sources = parse_sources(settings.sources, settings.rsync_args, settings.ssh_args)
    creator = BackupCreator(store, backend, policy, sources)
    return LifecycleController(store, backend, policy, creator)
