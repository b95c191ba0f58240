# SPDX-License-Identifier: Apache-2.0
"""
Tests for the command-line entry point.
"""

import json
import logging
import sys

import pytest

import main
from config import app_config


@pytest.fixture
def home(tmp_path, monkeypatch, qapp):
    """Point the application directories at a temporary home."""
    monkeypatch.setattr(app_config.Path, "home", lambda: tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    yield tmp_path
    root_logger = logging.getLogger("prefsync")
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()


def test_show_prints_defaults(home, capsys):
    assert main.main(["show"]) == 0

    tree = json.loads(capsys.readouterr().out)
    assert tree["theme"] == "system"
    assert tree["workingHours"]["start"] == "09:00"


def test_set_then_get(home, capsys):
    assert main.main(["--user", "alice", "set", "workingHours.start", '"07:30"']) == 0
    capsys.readouterr()

    assert main.main(["--user", "alice", "get", "workingHours"]) == 0
    hours = json.loads(capsys.readouterr().out)
    assert hours["start"] == "07:30"
    assert hours["end"] == "17:00"

    cache_file = home / ".prefsync" / "cache" / "calendar_preferences_alice.json"
    assert cache_file.exists()


def test_get_missing_path(home, capsys):
    assert main.main(["get", "nothing.here"]) == 1
    assert "No preference" in capsys.readouterr().err


def test_export_and_import(home, capsys, tmp_path):
    main.main(["set", "theme", "dark"])
    capsys.readouterr()

    export_dir = tmp_path / "exports"
    assert main.main(["export", "--dir", str(export_dir)]) == 0
    exported = list(export_dir.glob("calendar-preferences-*.json"))
    assert len(exported) == 1

    main.main(["reset"])
    assert main.main(["import", str(exported[0])]) == 0
    capsys.readouterr()

    main.main(["get", "theme"])
    assert json.loads(capsys.readouterr().out) == "dark"


def test_import_invalid_file(home, capsys, tmp_path):
    bad_file = tmp_path / "bad.json"
    bad_file.write_text("[1, 2, 3]", encoding="utf-8")

    assert main.main(["import", str(bad_file)]) == 1
    assert "Import failed" in capsys.readouterr().err


def test_import_unreadable_file(home, capsys, tmp_path):
    main.main(["set", "theme", "dark"])
    capsys.readouterr()

    assert main.main(["import", str(tmp_path / "missing.json")]) == 1
    assert "Import failed" in capsys.readouterr().err

    assert main.main(["import", str(tmp_path)]) == 1
    assert "Import failed" in capsys.readouterr().err

    main.main(["get", "theme"])
    assert json.loads(capsys.readouterr().out) == "dark"


def test_view_resolves_location(home, capsys):
    assert main.main(["view", "/calendar?view=week&date=2024-03-01"]) == 0

    resolved = json.loads(capsys.readouterr().out)
    assert resolved["view"] == "week"
    assert resolved["date"] == "2024-03-01"
    assert resolved["location"] == "/calendar?view=week&date=2024-03-01"

    main.main(["get", "lastView"])
    assert json.loads(capsys.readouterr().out) == "week"
