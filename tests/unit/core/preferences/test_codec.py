# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for preference import/export.
"""

import json
from datetime import datetime

import pytest

from core.preferences.codec import (
    export_filename,
    export_preferences,
    import_preferences,
    write_bundle,
)
from core.preferences.defaults import default_preferences
from core.preferences.exceptions import InvalidFormatError


def test_export_filename_uses_local_date():
    """Test the filename is derived from the export date."""
    assert export_filename(datetime(2024, 3, 1, 23, 59)) == "calendar-preferences-2024-03-01.json"


def test_export_bundle_contents():
    """Test exported content is formatted JSON of the tree."""
    tree = {"theme": "dark", "workingHours": {"start": "08:00"}}
    bundle = export_preferences(tree, datetime(2024, 3, 1, 12, 0))

    assert bundle.filename == "calendar-preferences-2024-03-01.json"
    assert bundle.media_type == "application/json"
    assert bundle.exported_at == datetime(2024, 3, 1, 12, 0)
    assert json.loads(bundle.content) == tree
    assert "\n  " in bundle.content


def test_export_then_import_reproduces_tree():
    """Test an exported bundle imports back to the same tree."""
    tree = default_preferences()
    tree["lastFilters"] = {"category": "Büro", "tags": ["a", "b"]}

    bundle = export_preferences(tree, datetime(2024, 3, 1))
    assert import_preferences(bundle.content) == tree
    assert import_preferences(bundle.content.encode("utf-8")) == tree


@pytest.mark.parametrize(
    "contents",
    ["", "{not json", "[1, 2]", "42", "null", b"\xff\xfe\x00"],
)
def test_import_rejects_malformed_contents(contents):
    """Test malformed files raise InvalidFormatError."""
    with pytest.raises(InvalidFormatError):
        import_preferences(contents)


def test_write_bundle(tmp_path):
    """Test a bundle is written under its filename."""
    bundle = export_preferences({"theme": "dark"}, datetime(2024, 3, 1))
    path = write_bundle(bundle, tmp_path / "exports")

    assert path == tmp_path / "exports" / "calendar-preferences-2024-03-01.json"
    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "dark"}
