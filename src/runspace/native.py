# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Native object model shared by the engines.

PropertyBag is the dynamic named-property object scripts produce.
DataCollection is the delivery collection engines add output and stream
records to; handlers registered on it run on the adding thread.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

from runspace.errors import InvalidOperationError, ScriptRuntimeError


class PropertyBag:
    """Object with an ordered set of dynamic named properties."""

    def __init__(self, **props: Any):
        object.__setattr__(self, "_props", {})
        for name, value in props.items():
            self.add_property(name, value)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Any]]) -> "PropertyBag":
        bag = cls()
        for name, value in pairs:
            bag.add_property(name, value)
        return bag

    def add_property(self, name: str, value: Any) -> None:
        """Add or overwrite a property. New names go to the end."""
        self._props[name] = value

    @property
    def properties(self) -> List[Tuple[str, Any]]:
        return list(self._props.items())

    def __getattr__(self, name: str) -> Any:
        props = self.__dict__.get("_props", {})
        try:
            return props[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self.add_property(name, value)

    def __getitem__(self, name: str) -> Any:
        return self._props[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.add_property(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._props

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyBag):
            return self.properties == other.properties
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._props.items())
        return f"PropertyBag({inner})"


DataAddedHandler = Callable[["DataCollection", int], None]


class DataCollection:
    """Thread-safe list that notifies handlers as items are added.

    Handlers receive (collection, index) and run synchronously on the thread
    that called add(). They are expected to remove the item once read.
    Concurrent adds are delivered one at a time: the index handed to the
    handlers stays valid until they return.
    """

    def __init__(self, items: Optional[Iterable[Any]] = None):
        self._items: List[Any] = list(items or [])
        self._cond = threading.Condition()
        # Held across append plus handlers so index and removal match up
        self._delivery = threading.RLock()
        self._completed = False
        self.data_added: List[DataAddedHandler] = []

    def add(self, item: Any) -> None:
        with self._delivery:
            with self._cond:
                if self._completed:
                    raise InvalidOperationError("Cannot add to a completed collection")
                self._items.append(item)
                index = len(self._items) - 1
                self._cond.notify_all()
            for handler in list(self.data_added):
                handler(self, index)

    def complete(self) -> None:
        """Signal that no more items will be added."""
        with self._cond:
            self._completed = True
            self._cond.notify_all()

    @property
    def is_completed(self) -> bool:
        return self._completed

    def remove_at(self, index: int) -> None:
        with self._cond:
            del self._items[index]

    def __getitem__(self, index: int) -> Any:
        with self._cond:
            return self._items[index]

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def consume(self, stop: Optional[threading.Event] = None) -> Iterator[Any]:
        """Pop items from the front, blocking until the collection completes.

        If stop is given and gets set, iteration ends early.
        """
        while True:
            with self._cond:
                while not self._items and not self._completed:
                    if stop is not None and stop.is_set():
                        return
                    self._cond.wait(timeout=0.1)
                if not self._items:
                    return
                item = self._items.pop(0)
            yield item


@dataclass
class ErrorRecord:
    """Error emitted by a script on its error stream."""

    exception: ScriptRuntimeError

    @classmethod
    def from_message(cls, message: str) -> "ErrorRecord":
        return cls(ScriptRuntimeError(message))

    def __str__(self) -> str:
        return self.exception.message


@dataclass
class WarningRecord:
    """Warning emitted by a script."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class InformationRecord:
    """Informational message emitted by a script."""

    message_data: Any

    def __str__(self) -> str:
        return str(self.message_data)


class NativeShape(Enum):
    """Runtime shape of a native object, decided once at conversion."""

    PROPERTY_BAG = "property_bag"
    MAP = "map"
    ARRAY = "array"
    SCALAR = "scalar"


def classify(obj: Any) -> NativeShape:
    """Classify a native object into one of the NativeShape variants."""
    if isinstance(obj, PropertyBag):
        return NativeShape.PROPERTY_BAG
    if isinstance(obj, Mapping):
        return NativeShape.MAP
    if isinstance(obj, (list, tuple)):
        return NativeShape.ARRAY
    return NativeShape.SCALAR
