"""Snapshot primitives.

``SnapshotBackend`` defines the capabilities the retention engine needs
from the storage substrate. ``BtrfsBackend`` implements them with the
``btrfs`` command line tool. All mutations go through the Executor so
that dry-run applies uniformly.
"""

import logging
import os
from pathlib import Path

import psutil

from snaprotate.storage.executor import Executor

logger = logging.getLogger(__name__)

# Inode number of the root directory of every btrfs subvolume
BTRFS_SUBVOLUME_INODE = 256
BTRFS_FSTYPE = "btrfs"


def _rename_no_clobber(src: Path, dst: Path):
    # os.rename silently replaces an empty destination directory
    if os.path.lexists(dst):
        raise FileExistsError(f"Destination already exists: {dst}")
    os.rename(src, dst)


def _make_dir(path: Path):
    path.mkdir(parents=True, exist_ok=True)


def filesystem_type(path: str | Path) -> str | None:
    """Return the type of the filesystem holding ``path``, or None."""
    real = os.path.realpath(path)
    best_mount = ""
    best_type = None
    for part in psutil.disk_partitions(all=True):
        mount = part.mountpoint
        if real == mount or real.startswith(mount.rstrip(os.sep) + os.sep):
            if len(mount) > len(best_mount):
                best_mount, best_type = mount, part.fstype
    return best_type


class SnapshotBackend:
    """Capabilities of a snapshot-capable store.

    Subclasses implement ``create_volume``, ``snapshot_create``,
    ``snapshot_delete`` and ``is_snapshot``. Moving a slot and creating
    plain directories are the same on every substrate.
    """

    def __init__(self, executor: Executor):
        self.executor = executor

    @property
    def dry_run(self) -> bool:
        return self.executor.dry_run

    def create_volume(self, path: Path) -> bool:
        """Create an empty, writable volume at ``path``."""
        raise NotImplementedError

    def snapshot_create(self, src: Path, dst: Path) -> bool:
        """Create a read-only point-in-time clone of ``src`` at ``dst``."""
        raise NotImplementedError

    def snapshot_delete(self, path: Path) -> bool:
        raise NotImplementedError

    def is_snapshot(self, path: Path) -> bool:
        raise NotImplementedError

    def move(self, src: Path, dst: Path) -> bool:
        """Atomically rename ``src`` to ``dst``; never overwrites."""
        return self.executor.apply("move", f"{src} -> {dst}",
                                   _rename_no_clobber, Path(src), Path(dst))

    def make_dir(self, path: Path) -> bool:
        return self.executor.apply("mkdir", path, _make_dir, Path(path))


class BtrfsBackend(SnapshotBackend):
    """Snapshot backend for btrfs subvolumes."""

    def __init__(self, executor: Executor, btrfs: str = "btrfs"):
        super().__init__(executor)
        self.btrfs = btrfs

    def create_volume(self, path: Path) -> bool:
        code = self.executor.run(
            [self.btrfs, "subvolume", "create", str(path)],
            action="subvolume", target=path,
        )
        if code != 0:
            logger.error("Could not create subvolume %s (exit %d)", path, code)
        return code == 0

    def snapshot_create(self, src: Path, dst: Path) -> bool:
        # btrfs places the snapshot inside dst when dst is an existing directory
        if not self.dry_run and os.path.lexists(dst):
            logger.error("Snapshot target %s already exists", dst)
            return False
        code = self.executor.run(
            [self.btrfs, "subvolume", "snapshot", "-r", str(src), str(dst)],
            action="snapshot", target=dst,
        )
        if code != 0:
            logger.error("Snapshot %s -> %s failed (exit %d)", src, dst, code)
        return code == 0

    def snapshot_delete(self, path: Path) -> bool:
        code = self.executor.run(
            [self.btrfs, "subvolume", "delete", str(path)],
            action="delete", target=path,
        )
        if code != 0:
            logger.error("Could not delete subvolume %s (exit %d)", path, code)
        return code == 0

    def is_snapshot(self, path: Path) -> bool:
        """True only for the root directory of a subvolume on btrfs."""
        try:
            st = os.lstat(path)
        except OSError:
            return False
        if st.st_ino != BTRFS_SUBVOLUME_INODE:
            return False
        fstype = filesystem_type(path)
        if fstype != BTRFS_FSTYPE:
            logger.debug("%s is on %s, not %s", path, fstype, BTRFS_FSTYPE)
            return False
        return True
