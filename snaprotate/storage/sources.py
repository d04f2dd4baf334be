"""Backup sources for the hourly generation.

Each configured source is one of a small closed set of strategies. A
strategy knows how to materialize its data into a destination directory
below hourly.0; failures are reported as False and never raise.
"""

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import ClassVar

from snaprotate.core.errors import ConfigError
from snaprotate.storage.backend import SnapshotBackend

logger = logging.getLogger(__name__)

RSYNC = "rsync"
RSYNC_BASE_ARGS = ["-a", "--delete", "--relative"]
SSH_BASE_ARGS = ["ssh", "-o", "BatchMode=yes"]


@dataclass(frozen=True)
class Source:
    """One fan-out target: copy ``src`` into ``<slot>/<dst>``."""
    src: str
    dst: str
    protocol: ClassVar[str] = ""

    def materialize(self, target: Path, backend: SnapshotBackend) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class SnapshotSource(Source):
    """Read-only snapshot of a local subvolume."""
    protocol: ClassVar[str] = "snapshot"

    def materialize(self, target: Path, backend: SnapshotBackend) -> bool:
        if target.exists():
            if not backend.is_snapshot(target):
                logger.error(
                    "Refusing to replace %s: it exists and is not a snapshot", target
                )
                return False
            logger.debug("Removing stale snapshot %s", target)
            if not backend.snapshot_delete(target):
                return False
        if not target.parent.exists() and not backend.make_dir(target.parent):
            return False
        return backend.snapshot_create(Path(self.src), target)


@dataclass(frozen=True)
class LocalCopySource(Source):
    """Incremental rsync mirror of a local directory."""
    rsync_args: tuple[str, ...] = field(default_factory=tuple)
    protocol: ClassVar[str] = "local"

    def command(self, target: Path) -> list[str]:
        return [RSYNC, *RSYNC_BASE_ARGS, *self.rsync_args, self.src, f"{target}/"]

    def materialize(self, target: Path, backend: SnapshotBackend) -> bool:
        if not backend.make_dir(target):
            return False
        code = backend.executor.run(self.command(target), action="mirror", target=target)
        if code != 0:
            logger.warning("rsync of %s into %s exited with %d", self.src, target, code)
        return code == 0


@dataclass(frozen=True)
class RemoteCopySource(LocalCopySource):
    """rsync mirror pulled from another host over ssh in batch mode."""
    ssh_args: tuple[str, ...] = field(default_factory=tuple)
    protocol: ClassVar[str] = "remote"

    def command(self, target: Path) -> list[str]:
        transport = shlex.join([*SSH_BASE_ARGS, *self.ssh_args])
        return [RSYNC, *RSYNC_BASE_ARGS, "-e", transport, *self.rsync_args,
                self.src, f"{target}/"]


@dataclass(frozen=True)
class ScriptSource(Source):
    """External command run with the destination as working directory.

    ``src`` is the command line; it is split with shlex and never passed
    through a shell.
    """
    protocol: ClassVar[str] = "script"

    def command(self) -> list[str]:
        return shlex.split(self.src)

    def materialize(self, target: Path, backend: SnapshotBackend) -> bool:
        if not backend.make_dir(target):
            return False
        code = backend.executor.run(self.command(), action="script",
                                    target=target, cwd=target)
        if code != 0:
            logger.warning("Script %r in %s exited with %d", self.src, target, code)
        return code == 0


PROTOCOLS: dict[str, type[Source]] = {
    "snapshot": SnapshotSource,
    "local": LocalCopySource,
    "local-copy": LocalCopySource,
    "remote": RemoteCopySource,
    "remote-copy": RemoteCopySource,
    "script": ScriptSource,
}


@dataclass
class SourceResult:
    protocol: str
    src: str
    dst: str
    success: bool


def _check_dst(dst) -> str:
    if not isinstance(dst, str) or not dst.strip():
        raise ConfigError(f"Source destination must be a non-empty string, got {dst!r}")
    pure = PurePosixPath(dst)
    if pure.is_absolute() or ".." in pure.parts:
        raise ConfigError(f"Source destination must stay inside the slot: {dst!r}")
    return dst


def parse_source(entry: dict, rsync_args=(), ssh_args=()) -> Source | None:
    """Build a Source from one config entry; None for unknown protocols."""
    if not isinstance(entry, dict):
        raise ConfigError(f"Source entry must be an object, got {entry!r}")
    protocol = entry.get("protocol")
    src = entry.get("src")
    if not src or not isinstance(src, str):
        raise ConfigError(f"Source entry is missing 'src': {entry!r}")
    dst = _check_dst(entry.get("dst"))

    cls = PROTOCOLS.get(protocol)
    if cls is None:
        logger.error("Unknown source protocol %r for %s, skipping", protocol, src)
        return None
    if cls is RemoteCopySource:
        return cls(src=src, dst=dst, rsync_args=tuple(rsync_args),
                   ssh_args=tuple(ssh_args))
    if cls is LocalCopySource:
        return cls(src=src, dst=dst, rsync_args=tuple(rsync_args))
    return cls(src=src, dst=dst)


def parse_sources(entries: list[dict], rsync_args=(), ssh_args=()) -> list[Source]:
    sources = []
    for entry in entries:
        source = parse_source(entry, rsync_args, ssh_args)
        if source is not None:
            sources.append(source)
    return sources
