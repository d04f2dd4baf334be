"""Execution of mutating operations, with a dry-run audit trail.

Every operation that changes the filesystem goes through an Executor:
external commands via ``run()`` (always an argument list, never a shell
string) and in-process filesystem calls via ``apply()``. In dry-run mode
the operation is recorded and logged but not performed.
"""

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

# Exit status reported when the program to run does not exist
EXIT_NOT_FOUND = 127


@dataclass
class AuditRecord:
    """Record of one mutating operation, executed or rehearsed."""
    timestamp: str
    action: str  # "snapshot", "delete", "subvolume", "move", "mkdir", "mirror", "script", "lock", "unlock"
    target: str
    command: list[str] | None
    executed: bool
    success: bool
    error: str | None = None


class Executor:
    """Runs commands and filesystem mutations, or records them in dry-run."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self._audit_log: list[AuditRecord] = []

    def _record(self, action: str, target, command: list[str] | None,
                executed: bool, success: bool,
                error: str | None = None) -> AuditRecord:
        record = AuditRecord(
            timestamp=datetime.now().isoformat(),
            action=action,
            target=str(target),
            command=command,
            executed=executed,
            success=success,
            error=error,
        )
        self._audit_log.append(record)
        return record

    def _spawn(self, args: list[str], cwd: str | None) -> int:
        return subprocess.run(args, cwd=cwd, check=False).returncode

    def run(self, args: list[str], action: str, target,
            cwd: str | Path | None = None) -> int:
        """Run an external command and return its exit status.

        In dry-run mode the command is only logged and 0 is returned.
        """
        args = [str(a) for a in args]
        cwd_str = str(cwd) if cwd is not None else None
        if self.dry_run:
            logger.info("[dry-run] %s %s: %s", action, target, " ".join(args))
            self._record(action, target, args, executed=False, success=True)
            return 0

        logger.debug("Running %s (cwd=%s)", args, cwd_str)
        try:
            code = self._spawn(args, cwd_str)
        except FileNotFoundError as exc:
            logger.error("Command not found for %s %s: %s", action, target, exc)
            self._record(action, target, args, executed=False, success=False,
                         error=str(exc))
            return EXIT_NOT_FOUND
        except OSError as exc:
            logger.error("Failed to start %s for %s: %s", args[0], target, exc)
            self._record(action, target, args, executed=False, success=False,
                         error=str(exc))
            return EXIT_NOT_FOUND

        self._record(action, target, args, executed=True, success=code == 0,
                     error=None if code == 0 else f"exit status {code}")
        return code

    def apply(self, action: str, target, func: Callable, *args) -> bool:
        """Call ``func(*args)`` unless in dry-run; OSError counts as failure."""
        if self.dry_run:
            logger.info("[dry-run] %s %s", action, target)
            self._record(action, target, None, executed=False, success=True)
            return True
        try:
            func(*args)
        except OSError as exc:
            logger.error("%s %s failed: %s", action, target, exc)
            self._record(action, target, None, executed=True, success=False,
                         error=str(exc))
            return False
        self._record(action, target, None, executed=True, success=True)
        return True

    @property
    def audit_log(self) -> list[AuditRecord]:
        return list(self._audit_log)
