"""Shared fixtures.

The engine is exercised against FakeSnapshotBackend, which emulates
subvolumes on any filesystem: a "subvolume" is a directory holding a
``.subvolume`` marker file, and a snapshot is a copytree of one. A
directory without the marker plays the part of a corrupted slot.
"""

import shutil
from pathlib import Path

import pytest

from snaprotate.retention.policy import RetentionPolicy
from snaprotate.storage.backend import SnapshotBackend
from snaprotate.storage.executor import Executor
from snaprotate.storage.slot_store import SlotStore

MARKER = ".subvolume"
ORIGIN = "origin.txt"


class RecordingExecutor(Executor):
    """Executor that records external commands instead of spawning them."""

    def __init__(self, dry_run: bool = False, returncode: int = 0):
        super().__init__(dry_run=dry_run)
        self.returncode = returncode
        self.fail_programs: set[str] = set()
        self.spawned: list[tuple[list[str], str | None]] = []

    def _spawn(self, args, cwd):
        self.spawned.append((args, cwd))
        if args[0] in self.fail_programs:
            return 23
        return self.returncode


class FakeSnapshotBackend(SnapshotBackend):

    def create_volume(self, path):
        return self.executor.apply("subvolume", path, self._create, Path(path))

    def snapshot_create(self, src, dst):
        return self.executor.apply("snapshot", dst, self._clone, Path(src), Path(dst))

    def snapshot_delete(self, path):
        return self.executor.apply("delete", path, shutil.rmtree, Path(path))

    def is_snapshot(self, path):
        return (Path(path) / MARKER).is_file()

    @staticmethod
    def _create(path: Path):
        path.mkdir()
        (path / MARKER).write_text("rw")

    @staticmethod
    def _clone(src: Path, dst: Path):
        if dst.exists():
            raise FileExistsError(f"{dst} exists")
        if not src.is_dir():
            raise FileNotFoundError(f"{src} missing")
        shutil.copytree(src, dst)
        (dst / MARKER).write_text("ro")


def make_slot(store: SlotStore, generation: str, index: int,
              origin: str | None = None, valid: bool = True) -> Path:
    """Create a slot directory whose origin.txt names where it came from."""
    path = store.path_of(generation, index)
    path.mkdir(parents=True)
    if valid:
        (path / MARKER).write_text("ro")
    (path / ORIGIN).write_text(origin or f"{generation}.{index}")
    return path


def origin_of(path: Path) -> str:
    return (path / ORIGIN).read_text()


def snapshot_tree(root: Path) -> dict[str, str]:
    """Map of every file under root to its content, for mutation checks."""
    return {
        str(p.relative_to(root)): p.read_text()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def backend(executor):
    return FakeSnapshotBackend(executor)


@pytest.fixture
def root(tmp_path):
    d = tmp_path / "backup"
    d.mkdir()
    return d


@pytest.fixture
def policy():
    return RetentionPolicy({"hourly": 3, "daily": 3, "weekly": 2, "monthly": 2})


@pytest.fixture
def store(root, backend):
    return SlotStore(root, backend)
