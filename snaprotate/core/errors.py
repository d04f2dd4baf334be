"""Fatal error hierarchy.

Anything raised from here aborts the current invocation. Recoverable
failures (one source failing to copy, one slot failing to move) are
reported through return values and the log instead.
"""


class RotationError(RuntimeError):
    """Base exception for fatal rotation failures."""


class ConfigError(RotationError):
    """Raised when the configuration is missing a required value or is invalid."""


class CorruptSlotError(RotationError):
    """Raised when a slot exists on disk but is not a snapshot."""


class SlotCollisionError(RotationError):
    """Raised when the target path for a new slot already exists."""


class MissingPredecessorError(RotationError):
    """Raised when no predecessor slot is available to promote."""


class LockHeldError(RotationError):
    """Raised when another live process holds the lock."""


class BackupError(RotationError):
    """Raised when a new slot could not be materialized."""
