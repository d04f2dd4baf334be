"""Tests for the command line entry point."""

import json
import logging

import pytest

from snaprotate import cli
from snaprotate.retention.lifecycle import build_controller

from conftest import FakeSnapshotBackend, make_slot, snapshot_tree


@pytest.fixture(autouse=True)
def fake_backend(monkeypatch):
    def build(settings, executor):
        return build_controller(settings, executor, backend=FakeSnapshotBackend(executor))
    monkeypatch.setattr(cli, "build_controller", build)


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def source_dir(tmp_path):
    d = tmp_path / "source"
    d.mkdir()
    (d / "file.txt").write_text("data")
    return d


@pytest.fixture
def config_path(tmp_path, root, source_dir):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "backup_root": str(root),
        "retention": {"hourly": 3, "daily": 2},
        "sources": [{"protocol": "snapshot", "src": str(source_dir), "dst": "home"}],
        "lock_file": str(tmp_path / "snaprotate.pid"),
    }))
    return str(path)


class TestResolveLevel:
    def test_default_info(self):
        assert cli.resolve_level(0, 0) == logging.INFO

    def test_verbose_and_quiet(self):
        assert cli.resolve_level(1, 0) == logging.DEBUG
        assert cli.resolve_level(0, 1) == logging.WARNING
        assert cli.resolve_level(0, 2) == logging.ERROR

    def test_clamped(self):
        assert cli.resolve_level(5, 0) == logging.DEBUG
        assert cli.resolve_level(0, 9) == logging.CRITICAL

    def test_base_from_environment_value(self):
        assert cli.resolve_level(1, 0, "WARNING") == logging.INFO


class TestCommands:
    def test_config_dump(self, config_path, root, capsys):
        assert cli.main(["-c", config_path, "config"]) == 0
        dumped = json.loads(capsys.readouterr().out)
        assert dumped["backup_root"] == str(root)
        assert dumped["retention"]["daily"] == 2
        assert dumped["retention"]["weekly"] == 5

    def test_init_then_cycles(self, config_path, store):
        assert cli.main(["-c", config_path, "init"]) == 0
        assert cli.main(["-c", config_path, "hourly"]) == 0
        assert cli.main(["-c", config_path, "hourly"]) == 0
        assert cli.main(["-c", config_path, "daily"]) == 0
        assert store.indices("hourly") == [0, 1, 2]
        assert store.indices("daily") == [0]
        assert (store.path_of("daily", 0) / "home" / "file.txt").read_text() == "data"

    def test_lock_released_after_run(self, config_path, tmp_path):
        cli.main(["-c", config_path, "init"])
        assert not (tmp_path / "snaprotate.pid").exists()

    def test_list(self, config_path, store, capsys):
        make_slot(store, "hourly", 0)
        make_slot(store, "hourly", 1)
        assert cli.main(["-c", config_path, "list"]) == 0
        out = capsys.readouterr().out
        assert "hourly: 0 1" in out
        assert "daily: -" in out

    def test_remove_missing_is_not_fatal(self, config_path, capsys):
        assert cli.main(["-c", config_path, "remove", "daily.2"]) == 1
        assert "FATAL" not in capsys.readouterr().err

    def test_remove_existing(self, config_path, store):
        make_slot(store, "daily", 1)
        assert cli.main(["-c", config_path, "remove", "daily.1"]) == 0
        assert not store.exists("daily", 1)

    def test_dry_run_changes_nothing(self, config_path, store, root, tmp_path):
        make_slot(store, "hourly", 0)
        make_slot(store, "hourly", 1)
        before = snapshot_tree(root)
        assert cli.main(["-n", "-c", config_path, "hourly"]) == 0
        assert snapshot_tree(root) == before
        assert not (tmp_path / "snaprotate.pid").exists()


class TestFatal:
    def test_missing_config(self, tmp_path, capsys):
        assert cli.main(["-c", str(tmp_path / "none.json"), "hourly"]) == 1
        assert "FATAL" in capsys.readouterr().err

    def test_config_path_is_directory(self, tmp_path, capsys):
        assert cli.main(["-c", str(tmp_path), "hourly"]) == 1
        assert "FATAL" in capsys.readouterr().err

    def test_unopenable_log_file(self, config_path, tmp_path, store, capsys):
        with open(config_path) as f:
            data = json.load(f)
        data["log_file"] = str(tmp_path / "no" / "such" / "dir" / "snaprotate.log")
        with open(config_path, "w") as f:
            json.dump(data, f)

        assert cli.main(["-c", config_path, "hourly"]) == 1
        assert "FATAL" in capsys.readouterr().err
        assert store.indices("hourly") == []

    def test_missing_predecessor(self, config_path, capsys):
        assert cli.main(["-c", config_path, "weekly"]) == 1
        assert "FATAL" in capsys.readouterr().err

    def test_init_collision(self, config_path, store, capsys):
        make_slot(store, "hourly", 0)
        assert cli.main(["-c", config_path, "init"]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_corrupt_slot(self, config_path, store, tmp_path):
        make_slot(store, "hourly", 1, valid=False)
        make_slot(store, "hourly", 0)
        assert cli.main(["-c", config_path, "hourly"]) == 1
        assert not (tmp_path / "snaprotate.pid").exists()

    def test_unknown_command(self, config_path):
        with pytest.raises(SystemExit):
            cli.main(["-c", config_path, "fortnightly"])
