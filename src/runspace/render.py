# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Output rendering for the CLI.

json renders one JSON object per line as records arrive; table and csv need
every row first.
"""

import csv
import json
import sys
from typing import Any, Dict, Iterable, List, TextIO

from runspace.values import Record, record_to_json, thaw

FORMATS = ("json", "table", "csv")


def _cell(value: Any) -> str:
    """Format one field value for table/csv output."""
    if isinstance(value, (Record, tuple)):
        return json.dumps(thaw(value), default=str)
    if value is None:
        return ""
    return str(value)


def render_records(
    records: Iterable[Record],
    format_type: str = "json",
    out: TextIO = None,
) -> int:
    """
    Render records to out (default stdout).

    Returns:
        Number of records rendered

    Raises:
        ValueError: If format_type is unknown
    """
    if format_type not in FORMATS:
        raise ValueError(f"Unknown format: {format_type}. Expected one of {', '.join(FORMATS)}")
    out = out or sys.stdout

    if format_type == "json":
        count = 0
        for record in records:
            print(record_to_json(record), file=out, flush=True)
            count += 1
        return count

    rows = [{name: _cell(value) for name, value in record.fields} for record in records]
    if format_type == "csv":
        _render_csv(rows, out)
    else:
        _render_table(rows, out)
    return len(rows)


def _columns(rows: List[Dict[str, str]]) -> List[str]:
    keys: List[str] = []
    for row in rows:
        for key in row:
            if key not in keys:
                keys.append(key)
    return keys


def _render_csv(rows: List[Dict[str, str]], out: TextIO) -> None:
    if rows:
        writer = csv.DictWriter(out, fieldnames=_columns(rows))
        writer.writeheader()
        writer.writerows(rows)


def _render_table(rows: List[Dict[str, str]], out: TextIO) -> None:
    """Render rows as a simple table."""
    if not rows:
        print("(no rows)", file=out)
        return
    keys = _columns(rows)
    widths = {k: max(len(k), max(len(r.get(k, "")) for r in rows)) for k in keys}
    header = " | ".join(k.ljust(widths[k]) for k in keys)
    print(header, file=out)
    print("-" * len(header), file=out)
    for row in rows:
        print(" | ".join(row.get(k, "").ljust(widths[k]) for k in keys), file=out)
