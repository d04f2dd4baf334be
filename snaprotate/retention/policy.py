"""Retention counts per generation."""

# Coarsening order; each generation after the first is fed by its predecessor
GENERATIONS = ("hourly", "daily", "weekly", "monthly", "yearly")

HOURLY = "hourly"

DEFAULT_RETENTION = {
    "hourly": 24,
    "daily": 7,
    "weekly": 5,
    "monthly": 12,
    "yearly": 100,
}


def check_generation(generation: str) -> str:
    if generation not in GENERATIONS:
        raise ValueError(f"Unknown generation: {generation!r}")
    return generation


class RetentionPolicy:
    """Maps a generation to how many slots it keeps.

    ``overrides`` comes from configuration and replaces the default
    count for the generations it names.
    """

    def __init__(self, overrides: dict[str, int] | None = None):
        self._counts = dict(DEFAULT_RETENTION)
        for generation, count in (overrides or {}).items():
            check_generation(generation)
            if count < 1:
                raise ValueError(f"Retention for {generation} must be >= 1")
            self._counts[generation] = count

    def retained_count(self, generation: str) -> int:
        return self._counts[check_generation(generation)]

    def max_index(self, generation: str) -> int:
        """Highest slot index that may persist after pruning."""
        return self.retained_count(generation) - 1

    @staticmethod
    def predecessor(generation: str) -> str | None:
        """Generation whose newest slot feeds ``generation``, or None for hourly."""
        position = GENERATIONS.index(check_generation(generation))
        if position == 0:
            return None
        return GENERATIONS[position - 1]

    def as_dict(self) -> dict[str, int]:
        return dict(self._counts)
