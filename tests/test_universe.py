"""Tests for the universe catalog."""

import json

import pytest
from pyorion.core.errors import ConfigurationError
from pyorion.core.universe import SourceKind, SourceObject, Universe, parse_kind


class TestUniverse:

    def test_default_schema(self):
        universe = Universe.default()
        assert universe.keys_of(SourceKind.TABLE) == [
            'scott.bonus', 'scott.dept', 'scott.emp', 'scott.salgrade']
        assert universe.keys_of(SourceKind.VIEW) == ['scott.emp_summary']
        assert universe.keys_of(SourceKind.MVIEW) == ['scott.dept_stats']
        assert universe.keys_of(SourceKind.SEQUENCE) == ['scott.emp_seq']
        assert universe.schemas() == ['scott']

    def test_inline_kinds_are_never_stored(self):
        assert Universe.default().keys_of(SourceKind.CHILD) == []

    def test_duplicate_object(self):
        universe = Universe()
        universe.add(SourceObject("t", SourceKind.TABLE, "s"))
        with pytest.raises(ConfigurationError, match="defined twice"):
            universe.add(SourceObject("t", SourceKind.VIEW, "s"))

    def test_key_without_schema(self):
        obj = SourceObject("t", SourceKind.TABLE)
        assert obj.key == "t"
        universe = Universe.from_objects([obj])
        assert "t" in universe
        assert universe.schemas() == []

    def test_from_dict(self):
        universe = Universe.from_dict({
            "app.users": {"schema": "app", "name": "users", "type": "BASE TABLE",
                          "columns": ["id", "email"]},
            "app.v": {"schema": "app", "name": "v", "kind": "view"},
        })
        assert universe.get("app.users").columns == ("id", "email")
        assert universe.get("app.v").kind == SourceKind.VIEW

    def test_from_file(self, tmp_path):
        path = tmp_path / "universe.json"
        path.write_text(json.dumps({"t": {"columns": ["a"]}}))
        universe = Universe.from_file(str(path))
        assert universe.get("t").kind == SourceKind.TABLE
        assert universe.get("t").columns == ("a",)

    def test_from_file_errors(self, tmp_path):
        with pytest.raises(ConfigurationError, match="No metadata file"):
            Universe.from_file(str(tmp_path / "missing.json"))
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            Universe.from_file(str(bad))
        malformed = tmp_path / "malformed.json"
        malformed.write_text(json.dumps({"t": ["a"]}))
        with pytest.raises(ConfigurationError, match="Malformed"):
            Universe.from_file(str(malformed))

    @pytest.mark.parametrize("value,kind", [
        ("table", SourceKind.TABLE),
        ("MATERIALIZED VIEW", SourceKind.MVIEW),
        (" sequence ", SourceKind.SEQUENCE),
        (SourceKind.VIEW, SourceKind.VIEW),
    ])
    def test_parse_kind(self, value, kind):
        assert parse_kind(value) == kind

    @pytest.mark.parametrize("value", ["index", "CHILD", "PARENT"])
    def test_parse_kind_rejects(self, value):
        with pytest.raises(ConfigurationError):
            parse_kind(value)
