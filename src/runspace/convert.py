# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Value converter between structured values and native engine objects.

Stateless, both directions:
- to_native: Record -> PropertyBag, tuple/list -> list, primitives as-is
- from_native: PropertyBag/map -> Record, anything else -> single-value Record

Nested property values are normalized recursively, so a PropertyBag inside a
PropertyBag comes back as a Record inside a Record.
"""

from typing import Any

from runspace.errors import ArgumentTypeError, InvalidKeyError, NullInputError
from runspace.native import NativeShape, PropertyBag, classify
from runspace.values import PRIMITIVE_KEY, Record, is_primitive


def to_native(value: Any) -> Any:
    """
    Convert a structured value into the engine's native object model.

    Args:
        value: Primitive, Record, or list/tuple of structured values

    Returns:
        Native object (PropertyBag for records, list for sequences)

    Raises:
        ArgumentTypeError: If value has no native form
    """
    if isinstance(value, Record):
        return PropertyBag.from_pairs((name, to_native(v)) for name, v in value.fields)
    if isinstance(value, (list, tuple)):
        return [to_native(v) for v in value]
    if is_primitive(value):
        return value
    raise ArgumentTypeError(f"Cannot convert {type(value).__name__} to a native object")


def _map_key(key: Any) -> str:
    if key is None:
        raise InvalidKeyError("Cannot convert native map: null key in map")
    if isinstance(key, str):
        return key
    try:
        return str(key)
    except Exception as e:
        raise InvalidKeyError(f"Cannot convert native map key {key!r}: {e}") from e


def normalize_native(obj: Any) -> Any:
    """Recursively turn a native value into a structured value."""
    shape = classify(obj)
    if shape is NativeShape.PROPERTY_BAG:
        return Record((name, normalize_native(v)) for name, v in obj.properties)
    if shape is NativeShape.MAP:
        return Record((_map_key(k), normalize_native(v)) for k, v in obj.items())
    if shape is NativeShape.ARRAY:
        return tuple(normalize_native(v) for v in obj)
    if is_primitive(obj):
        return obj
    # Opaque engine objects are carried by their string form
    return str(obj)


def from_native(obj: Any) -> Record:
    """
    Convert a native object emitted by a script into a Record.

    Property bags and maps produce one field per property/entry. Any other
    value (scalar or array) is wrapped under PRIMITIVE_KEY.

    Raises:
        NullInputError: If obj is None
        InvalidKeyError: If obj is a map with a null key
    """
    if obj is None:
        raise NullInputError("Native object cannot be null")

    shape = classify(obj)
    if shape in (NativeShape.PROPERTY_BAG, NativeShape.MAP):
        return normalize_native(obj)
    return Record([(PRIMITIVE_KEY, normalize_native(obj))])
