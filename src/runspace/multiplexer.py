# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Stream multiplexer.

Runs a prepared session and exposes its primary output as a single-pass
iterator. Error, warning and information records are forwarded to a logger
as they arrive; they never enter the output sequence.

    engine thread --add--> output DataCollection --process_data--> OutputBuffer --> consumer
                  --add--> error/warning/information --process_data--> logger
"""

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Iterable, Iterator, List, Optional

from runspace.convert import to_native
from runspace.engine import ScriptSession
from runspace.errors import ArgumentTypeError, InvalidOperationError
from runspace.native import DataCollection
from runspace.values import freeze

logger = logging.getLogger(__name__)

# Logger receiving script error/warning/information events by default
SCRIPT_LOGGER = "runspace.script"

DEFAULT_BUFFER_SIZE = 256

# Seconds to wait for the input feeder thread on close
FEEDER_JOIN_TIMEOUT = 5.0


def process_data(collection: Any, index: int, action: Callable[[Any], Any]) -> None:
    """
    Hand the item at index to action, then remove it from the collection.

    Delivery collections do not truncate themselves, so every handler must
    remove what it read. The item is removed even if action raises.

    Raises:
        ArgumentTypeError: If collection is not a DataCollection
    """
    if not isinstance(collection, DataCollection):
        raise ArgumentTypeError(
            f"Sender must be of type DataCollection, got {type(collection).__name__}"
        )
    item = collection[index]
    try:
        action(item)
    finally:
        collection.remove_at(index)


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a run."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run callback on cancel (immediately if already cancelled).

        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister
        callback()
        return lambda: None

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class OutputBuffer:
    """Bounded FIFO between the engine's delivery thread and the consumer.

    put() blocks while the buffer is full. Iteration ends once the buffer is
    completed and drained. close() also releases blocked producers; items
    put after close are dropped.
    """

    def __init__(self, maxsize: int = DEFAULT_BUFFER_SIZE):
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got: {maxsize}")
        self.maxsize = maxsize
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()
        self._completed = False
        self._closed = False

    def put(self, item: Any) -> bool:
        """Add an item, waiting for space. Returns False if the buffer is closed."""
        with self._cond:
            while len(self._items) >= self.maxsize and not self._closed:
                self._cond.wait()
            if self._closed:
                return False
            if self._completed:
                raise InvalidOperationError("Cannot put into a completed buffer")
            self._items.append(item)
            self._cond.notify_all()
            return True

    def complete(self) -> None:
        with self._cond:
            self._completed = True
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._completed = True
            self._closed = True
            self._items.clear()
            self._cond.notify_all()

    @property
    def is_completed(self) -> bool:
        return self._completed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        while True:
            with self._cond:
                while not self._items and not self._completed:
                    self._cond.wait()
                if not self._items:
                    return
                item = self._items.popleft()
                self._cond.notify_all()
            yield item


class InputFeeder:
    """Copies caller records into a session's pipeline input on a background thread."""

    def __init__(
        self,
        records: Iterable[Any],
        collection: DataCollection,
        cancellation: Optional[CancellationToken] = None,
    ):
        self.records = records
        self.collection = collection
        self.cancellation = cancellation
        self.error: Optional[BaseException] = None
        self.count = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="runspace-input", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _stopped(self) -> bool:
        if self._stop.is_set():
            return True
        return self.cancellation is not None and self.cancellation.cancelled

    def _run(self) -> None:
        try:
            for record in self.records:
                if self._stopped():
                    break
                self.collection.add(to_native(freeze(record)))
                self.count += 1
        except Exception as e:
            logger.error(f"Pipeline input failed after {self.count} record(s): {e}")
            self.error = e
        finally:
            self.collection.complete()


class ScriptRun:
    """Execution handle for one script run.

    Owns the session, the output buffer and the input feeder, and releases
    all of them when iteration ends, fails, is abandoned or is cancelled.
    Single-pass: iterating a second time raises InvalidOperationError.
    """

    def __init__(
        self,
        session: ScriptSession,
        logger: Optional[Any] = None,
        input: Optional[Iterable[Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.session = session
        self.logger = logger or logging.getLogger(SCRIPT_LOGGER)
        self.cancellation = cancellation
        self.buffer = OutputBuffer(buffer_size)
        self.output = DataCollection()
        self.input: Optional[DataCollection] = None
        self.feeder: Optional[InputFeeder] = None
        if input is not None:
            self.input = DataCollection()
            self.feeder = InputFeeder(input, self.input, cancellation)
        self._started = False
        self._closed = False
        self._unregister: Optional[Callable[[], None]] = None
        self._wire()

    def _wire(self) -> None:
        """Register delivery handlers. Must happen before the session starts."""
        streams = self.session.streams
        self.output.data_added.append(
            lambda c, i: process_data(c, i, self.buffer.put)
        )
        streams.error.data_added.append(
            lambda c, i: process_data(c, i, self._log_error)
        )
        streams.warning.data_added.append(
            lambda c, i: process_data(c, i, self._log_warning)
        )
        streams.information.data_added.append(
            lambda c, i: process_data(c, i, self._log_information)
        )
        self.session.add_done_callback(lambda _: self.buffer.complete())

    def _forward(self, log: Callable[[str], Any], text: str) -> None:
        try:
            log(text)
        except Exception:
            logger.exception("Failed to forward script log event")

    def _log_error(self, record: Any) -> None:
        self._forward(self.logger.error, record.exception.message)

    def _log_warning(self, record: Any) -> None:
        self._forward(self.logger.warning, record.message)

    def _log_information(self, record: Any) -> None:
        self._forward(self.logger.info, str(record.message_data))

    def start(self) -> None:
        """Start the session (and input feeding). Called by the first iteration."""
        if self._started:
            raise InvalidOperationError("Script run has already been started")
        self._started = True
        if self.cancellation is not None:
            self._unregister = self.cancellation.register(self.session.stop)
        if self.feeder is not None:
            self.feeder.start()
        self.session.begin_invoke(self.input, self.output)

    def __iter__(self) -> Iterator[Any]:
        if self._started:
            raise InvalidOperationError("Script run has already been started")
        try:
            self.start()
            yield from self.buffer
            self.session.end_invoke()
            cancelled = self.cancellation is not None and self.cancellation.cancelled
            if self.feeder is not None and self.feeder.error is not None and not cancelled:
                raise self.feeder.error
        finally:
            self.close()

    def close(self) -> None:
        """Stop the session if still running and release every resource. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._unregister is not None:
            self._unregister()
        if self.feeder is not None:
            self.feeder.stop()
        if self._started and not self.session.wait(0):
            self.session.stop()
        self.buffer.close()
        if self.feeder is not None:
            self.feeder.join(FEEDER_JOIN_TIMEOUT)
        self.session.dispose()

    def __enter__(self) -> "ScriptRun":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
