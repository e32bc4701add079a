# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Run event log.

Each script run appends up to two JSON lines to the events file, sharing one
correlation id:

    script.started    engine, script hash, variable names, input, mode
    script.completed  engine, output count, duration
    script.failed     engine, output count, duration, error (status failed or cancelled)
"""

import hashlib
import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union


def hash_script(script: str) -> str:
    """Create a SHA256 hash of a script body."""
    return hashlib.sha256(script.encode()).hexdigest()


class EventClient:
    """Writes the lifecycle events of one script run."""

    def __init__(
        self,
        log_path: Union[str, Path],
        engine: str,
        correlation_id: Optional[str] = None,
    ):
        self.log_path = Path(log_path).expanduser()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = engine
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._started_at: Optional[float] = None

    def started(
        self,
        script: str,
        variables: Iterable[str] = (),
        has_input: bool = False,
        mode: str = "stream",
    ) -> None:
        """Record the start of the run and begin timing it."""
        self._started_at = time.monotonic()
        self._write(
            "script.started",
            "running",
            {
                "script_sha256": hash_script(script),
                "variables": sorted(variables),
                "has_input": has_input,
                "mode": mode,
            },
        )

    def completed(self, output_count: int) -> None:
        self._write(
            "script.completed",
            "succeeded",
            {"output_count": output_count, "duration_ms": self._duration_ms()},
        )

    def failed(self, output_count: int, error: str, cancelled: bool = False) -> None:
        """Record a failed or interrupted run."""
        self._write(
            "script.failed",
            "cancelled" if cancelled else "failed",
            {"output_count": output_count, "duration_ms": self._duration_ms()},
            error_message=error,
        )

    def _duration_ms(self) -> Optional[int]:
        if self._started_at is None:
            return None
        return int((time.monotonic() - self._started_at) * 1000)

    def _write(
        self,
        event_type: str,
        status: str,
        payload: Dict[str, Any],
        error_message: Optional[str] = None,
    ) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": self.correlation_id,
            "status": status,
            "payload": {"engine": self.engine, **payload},
        }
        if error_message:
            event["error_message"] = error_message

        with open(self.log_path, "a") as f:
            f.write(json.dumps(event) + "\n")
