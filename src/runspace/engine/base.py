# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Engine and session contract shared by all script engines."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from runspace.errors import (
    InvalidOperationError,
    PipelineStoppedError,
    ScriptTerminatedError,
)
from runspace.native import DataCollection

# Seconds to wait for a worker thread to exit during dispose
JOIN_TIMEOUT = 5.0


class SessionState(Enum):
    """Lifecycle of a script session."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    DISPOSED = "disposed"


@dataclass
class Streams:
    """Side channels a script writes to besides its primary output."""

    error: DataCollection = field(default_factory=DataCollection)
    warning: DataCollection = field(default_factory=DataCollection)
    information: DataCollection = field(default_factory=DataCollection)

    def complete(self) -> None:
        self.error.complete()
        self.warning.complete()
        self.information.complete()


class ScriptSession:
    """One isolated, single-use execution context.

    Subclasses implement _execute(), which runs on the session's worker
    thread and adds output objects to the output collection. _execute raises
    PipelineStoppedError when stopped and ScriptTerminatedError when the
    script fails.
    """

    def __init__(self):
        self.streams = Streams()
        self.variables: Dict[str, Any] = {}
        self.script: Optional[str] = None
        self.state = SessionState.NOT_STARTED
        self.failure: Optional[ScriptTerminatedError] = None
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._done = threading.Event()
        self._done_callbacks: List[Callable[["ScriptSession"], None]] = []
        self._thread: Optional[threading.Thread] = None

    def set_variable(self, name: str, value: Any) -> None:
        """Bind a native value to a variable name in the session."""
        self._require_not_started()
        self.variables[name] = value

    def add_script(self, script: str) -> None:
        """Register the script body. Does not start it."""
        self._require_not_started()
        self.script = script

    def _require_not_started(self) -> None:
        if self.state != SessionState.NOT_STARTED:
            raise InvalidOperationError(f"Session is {self.state.value}, expected not_started")

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def add_done_callback(self, callback: Callable[["ScriptSession"], None]) -> None:
        """Register a callback run once execution has finished.

        Runs on the worker thread, or immediately if already finished.
        """
        with self._lock:
            if not self._done.is_set():
                self._done_callbacks.append(callback)
                return
        callback(self)

    def begin_invoke(
        self,
        input: Optional[DataCollection],
        output: DataCollection,
    ) -> None:
        """Start the script on a worker thread and return immediately.

        Args:
            input: Pipeline input collection, or None for no input
            output: Collection receiving primary output objects

        Raises:
            InvalidOperationError: If the session was already invoked or has no script
        """
        with self._lock:
            if self.state != SessionState.NOT_STARTED:
                raise InvalidOperationError("Session has already been invoked")
            if self.script is None:
                raise InvalidOperationError("No script has been added to the session")
            self.state = SessionState.RUNNING

        self._thread = threading.Thread(
            target=self._run,
            args=(input, output),
            name=f"runspace-{type(self).__name__}",
            daemon=True,
        )
        self._thread.start()

    def _run(self, input: Optional[DataCollection], output: DataCollection) -> None:
        try:
            self._execute(input, output)
        except PipelineStoppedError:
            self.logger.debug("Script stopped")
        except ScriptTerminatedError as e:
            self.failure = e
        except Exception as e:
            self.logger.exception("Engine failed while running script")
            self.failure = ScriptTerminatedError(f"Engine failure: {e}")
        finally:
            self._finish(output)

    def _finish(self, output: DataCollection) -> None:
        output.complete()
        self.streams.complete()
        with self._lock:
            if self.state == SessionState.DISPOSED:
                # Worker outlived dispose(); keep the final state
                pass
            elif self._stop_event.is_set():
                self.state = SessionState.STOPPED
            elif self.failure is not None:
                self.state = SessionState.FAILED
            else:
                self.state = SessionState.COMPLETED
            self._done.set()
            callbacks = list(self._done_callbacks)
            self._done_callbacks.clear()
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                self.logger.exception("Session done callback failed")

    def _execute(self, input: Optional[DataCollection], output: DataCollection) -> None:
        """Run the script to completion. Subclasses must override."""
        raise NotImplementedError

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until execution finishes. Returns False on timeout."""
        return self._done.wait(timeout)

    def end_invoke(self) -> None:
        """Wait for completion.

        Raises:
            ScriptTerminatedError: If the script ended with a terminating error
        """
        self._done.wait()
        if self.failure is not None and not self._stop_event.is_set():
            raise self.failure

    def stop(self) -> None:
        """Request a cooperative stop. No new output is produced afterwards."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._on_stop()

    def _on_stop(self) -> None:
        """Hook for engines that must interrupt an external runtime."""
        pass

    def _release(self) -> None:
        """Hook for engines holding OS resources."""
        pass

    def dispose(self) -> None:
        """Stop if running, join the worker, and release resources. Idempotent."""
        if self.state == SessionState.DISPOSED:
            return
        if self._thread is not None:
            if not self._done.is_set():
                self.stop()
            self._thread.join(JOIN_TIMEOUT)
            if self._thread.is_alive():
                self.logger.warning(
                    f"Script worker did not exit within {JOIN_TIMEOUT}s; abandoning thread"
                )
        self._release()
        with self._lock:
            self.state = SessionState.DISPOSED

    def __enter__(self) -> "ScriptSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()


class Engine:
    """Factory for sessions of one script language."""

    name = ""
    description = ""

    def is_available(self) -> bool:
        return True

    def create_session(self) -> ScriptSession:
        """Return a fresh, unstarted session. Subclasses must override."""
        raise NotImplementedError
