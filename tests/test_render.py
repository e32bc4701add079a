"""Tests for output rendering."""

import io
import json

import pytest

from runspace.render import render_records
from runspace.values import Record


RECORDS = [
    Record.create(name="alpha", count=1),
    Record.create(name="beta", count=22, tags=("x", "y")),
]


class TestRenderRecords:
    """Tests for render_records."""

    def test_json_lines(self):
        out = io.StringIO()

        count = render_records(RECORDS, "json", out)

        lines = out.getvalue().splitlines()
        assert count == 2
        assert json.loads(lines[0]) == {"name": "alpha", "count": 1}
        assert json.loads(lines[1]) == {"name": "beta", "count": 22, "tags": ["x", "y"]}

    def test_table(self):
        out = io.StringIO()

        render_records(RECORDS, "table", out)

        lines = out.getvalue().splitlines()
        assert lines[0].split(" | ")[0].strip() == "name"
        assert "tags" in lines[0]
        assert set(lines[1]) == {"-"}
        assert '["x", "y"]' in lines[3]

    def test_empty_table(self):
        out = io.StringIO()

        assert render_records([], "table", out) == 0
        assert out.getvalue() == "(no rows)\n"

    def test_csv_uses_all_columns(self):
        out = io.StringIO()

        render_records(RECORDS, "csv", out)

        lines = out.getvalue().splitlines()
        assert lines[0] == "name,count,tags"
        assert lines[1] == "alpha,1,"

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown format"):
            render_records(RECORDS, "xml", io.StringIO())
