"""Tests for the native object model."""

import threading

import pytest

from runspace.errors import InvalidOperationError
from runspace.native import (
    DataCollection,
    ErrorRecord,
    InformationRecord,
    NativeShape,
    PropertyBag,
    WarningRecord,
    classify,
)


class TestPropertyBag:
    """Tests for PropertyBag."""

    def test_properties_keep_order(self):
        bag = PropertyBag(prop1="value1", prop2="value2")
        bag.add_property("prop3", 3)

        assert bag.properties == [("prop1", "value1"), ("prop2", "value2"), ("prop3", 3)]

    def test_attribute_and_item_access(self):
        bag = PropertyBag(name="x")
        bag.count = 2

        assert bag.name == "x"
        assert bag["count"] == 2
        assert "count" in bag

    def test_missing_attribute(self):
        with pytest.raises(AttributeError):
            PropertyBag().missing

    def test_equality(self):
        assert PropertyBag(a=1, b=2) == PropertyBag.from_pairs([("a", 1), ("b", 2)])
        assert PropertyBag(a=1, b=2) != PropertyBag(b=2, a=1)


class TestDataCollection:
    """Tests for DataCollection."""

    def test_add_notifies_handlers_with_index(self):
        """Handlers receive the collection and the index of the new item."""
        collection = DataCollection()
        seen = []
        collection.data_added.append(lambda c, i: seen.append(c[i]))

        collection.add("one")
        collection.add("two")

        assert seen == ["one", "two"]

    def test_concurrent_adds_deliver_each_item_once(self):
        """Handlers that read then remove by index see every item from every writer."""
        collection = DataCollection()
        seen = []

        def handler(c, i):
            seen.append(c[i])
            c.remove_at(i)

        collection.data_added.append(handler)

        def produce(writer):
            for n in range(1000):
                collection.add((writer, n))

        writers = [threading.Thread(target=produce, args=(w,)) for w in range(4)]
        for writer in writers:
            writer.start()
        for writer in writers:
            writer.join()

        assert len(seen) == 4000
        assert sorted(seen) == [(w, n) for w in range(4) for n in range(1000)]
        assert len(collection) == 0

    def test_remove_at(self):
        collection = DataCollection(["string0", "string1"])

        collection.remove_at(0)

        assert len(collection) == 1
        assert collection[0] == "string1"

    def test_add_after_complete_raises(self):
        collection = DataCollection()
        collection.complete()

        assert collection.is_completed
        with pytest.raises(InvalidOperationError):
            collection.add("late")

    def test_consume_drains_completed_collection(self):
        collection = DataCollection([1, 2])
        collection.complete()

        assert list(collection.consume()) == [1, 2]
        assert len(collection) == 0

    def test_consume_waits_for_producer(self):
        """consume blocks until items arrive and ends on completion."""
        collection = DataCollection()

        def produce():
            for i in range(3):
                collection.add(i)
            collection.complete()

        producer = threading.Thread(target=produce)
        producer.start()
        items = list(collection.consume())
        producer.join()

        assert items == [0, 1, 2]

    def test_consume_stops_on_event(self):
        """A set stop event ends consumption of an open collection."""
        collection = DataCollection()
        stop = threading.Event()
        stop.set()

        assert list(collection.consume(stop)) == []


class TestRecords:
    """Tests for stream record types."""

    def test_error_record_message(self):
        record = ErrorRecord.from_message("boom")
        assert record.exception.message == "boom"
        assert str(record) == "boom"

    def test_warning_and_information(self):
        assert str(WarningRecord("careful")) == "careful"
        assert str(InformationRecord(42)) == "42"


class TestClassify:
    """Tests for native shape classification."""

    @pytest.mark.parametrize(
        "obj,shape",
        [
            (PropertyBag(a=1), NativeShape.PROPERTY_BAG),
            ({"a": 1}, NativeShape.MAP),
            ([1, 2], NativeShape.ARRAY),
            ((1, 2), NativeShape.ARRAY),
            ("text", NativeShape.SCALAR),
            (b"bytes", NativeShape.SCALAR),
            (3.5, NativeShape.SCALAR),
        ],
    )
    def test_classify(self, obj, shape):
        assert classify(obj) is shape
