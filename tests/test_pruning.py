"""Tests for pruning slots beyond the retained count."""

import pytest

from snaprotate.core.errors import CorruptSlotError
from snaprotate.retention.policy import RetentionPolicy
from snaprotate.retention.pruning import PruningEngine

from conftest import MARKER, make_slot, origin_of


@pytest.fixture
def pruner(store, backend, policy):
    return PruningEngine(store, backend, policy)


class TestPrune:
    def test_victim_removed(self, pruner, store):
        for i in range(4):
            make_slot(store, "daily", i)

        removed = pruner.prune("daily")

        assert removed == [store.path_of("daily", 3)]
        assert store.indices("daily") == [0, 1, 2]

    def test_no_victim_is_not_an_error(self, pruner, store):
        make_slot(store, "daily", 0)
        assert pruner.prune("daily") == []
        assert store.indices("daily") == [0]

    def test_empty_generation(self, pruner):
        assert pruner.prune("monthly") == []

    def test_idempotent(self, pruner, store):
        for i in range(4):
            make_slot(store, "daily", i)
        pruner.prune("daily")
        after_first = store.indices("daily")
        assert pruner.prune("daily") == []
        assert store.indices("daily") == after_first

    def test_lowered_retention_removes_all_excess(self, store, backend):
        for i in range(6):
            make_slot(store, "weekly", i)
        pruner = PruningEngine(store, backend, RetentionPolicy({"weekly": 2}))

        removed = pruner.prune("weekly")

        assert [p.name for p in removed] == ["weekly.5", "weekly.4", "weekly.3", "weekly.2"]
        assert store.indices("weekly") == [0, 1]

    def test_zero_padded_directory_is_not_a_slot(self, pruner, store, root):
        for i in range(4):
            make_slot(store, "daily", i)
        stray = root / "daily.05"
        stray.mkdir()
        (stray / MARKER).write_text("ro")

        removed = pruner.prune("daily")

        assert removed == [store.path_of("daily", 3)]
        assert stray.is_dir()

    def test_retained_slots_untouched(self, pruner, store):
        for i in range(4):
            make_slot(store, "daily", i)
        pruner.prune("daily")
        for i in range(3):
            assert origin_of(store.path_of("daily", i)) == f"daily.{i}"

    def test_other_generations_untouched(self, pruner, store):
        for i in range(5):
            make_slot(store, "hourly", i)
        make_slot(store, "daily", 5)
        pruner.prune("daily")
        assert store.indices("hourly") == [0, 1, 2, 3, 4]


class TestPruneCorruption:
    def test_refuses_non_snapshot(self, pruner, store):
        victim = make_slot(store, "daily", 3, valid=False)
        with pytest.raises(CorruptSlotError):
            pruner.prune("daily")
        assert victim.exists()

    def test_failed_delete_is_logged_not_raised(self, pruner, store, backend, monkeypatch):
        make_slot(store, "daily", 3)
        make_slot(store, "daily", 4)
        monkeypatch.setattr(backend, "snapshot_delete", lambda path: path.name != "daily.4")

        removed = pruner.prune("daily")

        assert [p.name for p in removed] == ["daily.3"]
