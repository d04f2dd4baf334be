"""Configuration loading and defaults.

The configuration is a single JSON file::

    {
        "backup_root": "/mnt/backup",
        "retention": {"hourly": 24, "daily": 7},
        "sources": [
            {"protocol": "snapshot", "src": "/home", "dst": "home"},
            {"protocol": "remote", "src": "web01:/srv", "dst": "web01"}
        ],
        "rsync_args": ["--exclude=*.tmp"],
        "ssh_args": ["-p", "2222"],
        "log_file": "/var/log/snaprotate.log",
        "lock_file": "/run/snaprotate.pid"
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from snaprotate.core.errors import ConfigError
from snaprotate.retention.policy import DEFAULT_RETENTION, GENERATIONS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.environ.get(
    "SNAPROTATE_CONFIG", "/etc/snaprotate/config.json"
)

DEFAULT_LOCK_FILE = "/run/snaprotate.pid"


@dataclass
class Settings:
    """Effective settings for one invocation."""
    backup_root: Path
    retention: dict[str, int] = field(default_factory=dict)
    sources: list[dict] = field(default_factory=list)
    rsync_args: list[str] = field(default_factory=list)
    ssh_args: list[str] = field(default_factory=list)
    log_file: str | None = None
    lock_file: str = DEFAULT_LOCK_FILE

    def effective_retention(self) -> dict[str, int]:
        merged = dict(DEFAULT_RETENTION)
        merged.update(self.retention)
        return merged

    def to_dict(self) -> dict:
        return {
            "backup_root": str(self.backup_root),
            "retention": self.effective_retention(),
            "sources": list(self.sources),
            "rsync_args": list(self.rsync_args),
            "ssh_args": list(self.ssh_args),
            "log_file": self.log_file,
            "lock_file": self.lock_file,
        }


def _resolve_path(path_str: str) -> Path:
    return Path(os.path.expanduser(os.path.expandvars(path_str)))


def _string_list(raw: dict, key: str) -> list[str]:
    value = raw.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _parse_retention(raw: dict) -> dict[str, int]:
    retention = raw.get("retention", {}) or {}
    if not isinstance(retention, dict):
        raise ConfigError("'retention' must be an object")
    parsed: dict[str, int] = {}
    for generation, count in retention.items():
        if generation not in GENERATIONS:
            raise ConfigError(f"Unknown generation in retention: {generation}")
        # bool is an int subclass; "true" slots make no sense
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ConfigError(
                f"Retention for {generation} must be a positive integer, got {count!r}"
            )
        parsed[generation] = count
    return parsed


def settings_from_dict(raw: dict) -> Settings:
    """Validate a decoded configuration object and build Settings."""
    root = raw.get("backup_root")
    if not root:
        raise ConfigError("'backup_root' is not set")

    sources = raw.get("sources", []) or []
    if not isinstance(sources, list):
        raise ConfigError("'sources' must be a list")

    return Settings(
        backup_root=_resolve_path(root),
        retention=_parse_retention(raw),
        sources=sources,
        rsync_args=_string_list(raw, "rsync_args"),
        ssh_args=_string_list(raw, "ssh_args"),
        log_file=raw.get("log_file"),
        lock_file=raw.get("lock_file") or DEFAULT_LOCK_FILE,
    )


def load_settings(config_path: str | None = None) -> Settings:
    """Read the JSON config file and return validated Settings."""
    path = Path(config_path or DEFAULT_CONFIG_PATH)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    try:
        with open(path) as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be an object: {path}")
    logger.debug("Loaded configuration from %s", path)
    return settings_from_dict(raw)
