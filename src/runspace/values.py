# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Structured value model.

A structured value is a primitive (str, int, float, bool, date, datetime or
an Enum member), a Record, or a list of structured values stored as a tuple.
Records are immutable ordered mappings with unique field names.
"""

import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Tuple

# Field name used when a record wraps a single scalar or list value
PRIMITIVE_KEY = "value"

PRIMITIVE_TYPES = (str, int, float, bool, date, datetime, Enum)


def is_primitive(value: Any) -> bool:
    """Return True if value is a primitive structured value (or None)."""
    return value is None or isinstance(value, PRIMITIVE_TYPES)


def freeze(value: Any) -> Any:
    """Coerce plain Python data into a structured value.

    dicts become Records and lists become tuples, recursively.

    Raises:
        TypeError: If value (or a nested value) has no structured form.
    """
    if isinstance(value, Record) or is_primitive(value):
        return value
    if isinstance(value, Mapping):
        return Record.from_dict(value)
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    raise TypeError(f"Cannot convert {type(value).__name__} to a structured value")


class Record(Mapping):
    """Immutable ordered mapping of field name to structured value."""

    __slots__ = ("_fields", "_index")

    def __init__(self, fields: Iterable[Tuple[str, Any]] = ()):
        pairs = []
        index: Dict[str, int] = {}
        for name, value in fields:
            if not isinstance(name, str):
                raise TypeError(f"Record field names must be str, got {type(name).__name__}")
            if name in index:
                raise ValueError(f"Duplicate field name in record: {name}")
            index[name] = len(pairs)
            pairs.append((name, freeze(value)))
        self._fields = tuple(pairs)
        self._index = index

    @classmethod
    def create(cls, **fields: Any) -> "Record":
        """Build a record from keyword arguments, in argument order."""
        return cls(fields.items())

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Any]]) -> "Record":
        return cls(pairs)

    @classmethod
    def from_dict(cls, data: Mapping) -> "Record":
        """Build a record from a mapping; nested dicts and lists are frozen."""
        return cls((str(k), v) for k, v in data.items())

    @classmethod
    def primitive(cls, value: Any) -> "Record":
        """Wrap a single scalar or list under PRIMITIVE_KEY."""
        return cls([(PRIMITIVE_KEY, value)])

    @property
    def fields(self) -> Tuple[Tuple[str, Any], ...]:
        return self._fields

    @property
    def is_primitive(self) -> bool:
        """True if this record only wraps a single value."""
        return len(self._fields) == 1 and self._fields[0][0] == PRIMITIVE_KEY

    @property
    def primitive_value(self) -> Any:
        if not self.is_primitive:
            raise ValueError("Record has named fields, not a single primitive value")
        return self._fields[0][1]

    def __getitem__(self, name: str) -> Any:
        return self._fields[self._index[name]][1]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._fields == other._fields
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._fields)

    def __repr__(self) -> str:
        inner = " ".join(f"{name!r}: {value!r}" for name, value in self._fields)
        return f"Record({inner})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain Python data (Records to dicts, tuples to lists)."""
        return {name: thaw(value) for name, value in self._fields}


def thaw(value: Any) -> Any:
    """Convert a structured value to plain Python data."""
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.name
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def record_to_json(record: Record) -> str:
    """Serialize a record as a compact JSON object."""
    return json.dumps(record.to_dict(), default=_json_default)


def record_from_json(text: str) -> Record:
    """Parse one JSON value into a record.

    JSON objects become records; any other JSON value is wrapped under
    PRIMITIVE_KEY.
    """
    data = json.loads(text)
    if isinstance(data, dict):
        return Record.from_dict(data)
    return Record.primitive(data)
