"""Process-singleton lock.

Only one rotation may run against a backup root at a time. The lock is
a pid file created with O_EXCL: a live holder makes the new invocation
abort, a holder whose process is gone (or whose pid now belongs to an
unrelated program) is treated as stale and the lock is taken over.
"""

import logging
import os
from pathlib import Path

import psutil

from snaprotate.core.errors import LockHeldError
from snaprotate.storage.executor import Executor

logger = logging.getLogger(__name__)

# Substrings identifying our own command line (console script, launcher, -m)
OWNER_MARKERS = ("snaprotate", "run.py")


def read_holder(path: Path) -> int | None:
    """Return the pid stored in the lock file, or None if absent/unreadable."""
    try:
        text = path.read_text().strip()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Could not read lock file %s: %s", path, exc)
        return None
    try:
        return int(text)
    except ValueError:
        logger.warning("Lock file %s holds garbage %r", path, text)
        return None


def holder_alive(pid: int, markers: tuple[str, ...] = OWNER_MARKERS) -> bool:
    """True if ``pid`` is running and its command line looks like ours."""
    try:
        cmdline = psutil.Process(pid).cmdline()
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return False
    except psutil.AccessDenied:
        # cannot tell who it is; assume a competitor
        return True
    if not any(marker in part for part in cmdline for marker in markers):
        logger.debug("pid %d runs %s, not a lock holder", pid, cmdline)
        return False
    return True


class LockGuard:
    """Scoped lock acquisition, released on every exit path.

    Usage::

        with LockGuard("/run/snaprotate.pid", executor):
            controller.run_cycle("hourly")
    """

    def __init__(self, path: str | Path, executor: Executor | None = None,
                 pid: int | None = None,
                 owner_markers: tuple[str, ...] = OWNER_MARKERS):
        self.path = Path(path)
        self.executor = executor or Executor()
        self.pid = pid if pid is not None else os.getpid()
        self.owner_markers = owner_markers
        self._held = False

    def _check_holder(self, holder: int | None):
        if holder is not None and holder != self.pid \
                and holder_alive(holder, self.owner_markers):
            raise LockHeldError(
                f"Another instance (pid {holder}) holds {self.path}"
            )

    def _create(self):
        fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w") as f:
            f.write(f"{self.pid}\n")

    def _claim(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._create()
            return
        except FileExistsError:
            pass

        holder = read_holder(self.path)
        self._check_holder(holder)
        if holder != self.pid:
            logger.warning("Reclaiming stale lock %s from pid %s", self.path, holder)
        self.path.unlink(missing_ok=True)
        try:
            self._create()
        except FileExistsError as exc:
            raise LockHeldError(
                f"Another instance took {self.path} while reclaiming it"
            ) from exc

    def _remove(self):
        if read_holder(self.path) == self.pid:
            self.path.unlink()

    def acquire(self):
        # fail early, also in dry-run where _claim is never executed
        self._check_holder(read_holder(self.path))
        if not self.executor.apply("lock", self.path, self._claim):
            raise LockHeldError(f"Could not write lock file {self.path}")
        self._held = True
        logger.debug("Acquired lock %s (pid %d)", self.path, self.pid)

    def release(self):
        if not self._held:
            return
        self.executor.apply("unlock", self.path, self._remove)
        self._held = False
        logger.debug("Released lock %s", self.path)

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
