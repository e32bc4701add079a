# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
PowerShell engine driving a pwsh child process.

Protocol:
- stdin line 1: bound variables as one JSON object
- stdin lines 2..n: pipeline input, one JSON object per record (exposed as $input)
- stdout: one JSON envelope per record, {"stream": ..., "value": ...} where
  stream is output, error, warning, information or terminating

The user script runs inside a wrapper with all streams merged (*>&1), so
every record reaches stdout in emission order.
"""

import json
import os
import shutil
import subprocess
import tempfile
import threading
from collections import deque
from datetime import date, datetime
from enum import Enum
from typing import Any, Deque, Optional

from runspace.engine.base import Engine, ScriptSession
from runspace.errors import (
    EngineUnavailableError,
    PipelineStoppedError,
    ScriptTerminatedError,
)
from runspace.native import (
    DataCollection,
    ErrorRecord,
    InformationRecord,
    PropertyBag,
    WarningRecord,
)

# Lines of stderr kept for failure messages
STDERR_TAIL_LINES = 10

# Seconds to wait for the stdin feeder once pwsh has exited
FEEDER_JOIN_TIMEOUT = 5.0

WRAPPER_TEMPLATE = r"""
$ErrorActionPreference = 'Continue'
$WarningPreference = 'Continue'
$InformationPreference = 'Continue'
$ProgressPreference = 'SilentlyContinue'

function __RunspaceEmit([string]$Stream, $Value) {
    $envelope = [ordered]@{ stream = $Stream; value = $Value }
    [Console]::Out.WriteLine((ConvertTo-Json -InputObject $envelope -Compress -Depth 32))
    [Console]::Out.Flush()
}

$__runspaceVars = [Console]::In.ReadLine() | ConvertFrom-Json
if ($null -ne $__runspaceVars) {
    foreach ($__runspaceVar in $__runspaceVars.PSObject.Properties) {
        Set-Variable -Name $__runspaceVar.Name -Value $__runspaceVar.Value
    }
}

$__runspaceScript = {
%(script)s
}

try {
    & { while ($null -ne ($__line = [Console]::In.ReadLine())) { ConvertFrom-Json -InputObject $__line } } |
        & $__runspaceScript *>&1 |
        ForEach-Object {
            if ($_ -is [System.Management.Automation.ErrorRecord]) {
                __RunspaceEmit 'error' $_.Exception.Message
            }
            elseif ($_ -is [System.Management.Automation.WarningRecord]) {
                __RunspaceEmit 'warning' $_.Message
            }
            elseif ($_ -is [System.Management.Automation.InformationRecord]) {
                __RunspaceEmit 'information' "$($_.MessageData)"
            }
            elseif ($_ -is [System.Management.Automation.VerboseRecord] -or
                    $_ -is [System.Management.Automation.DebugRecord]) {
            }
            else {
                __RunspaceEmit 'output' $_
            }
        }
}
catch {
    __RunspaceEmit 'terminating' $_.Exception.Message
    exit 1
}
"""


def _json_default(value: Any) -> Any:
    if isinstance(value, PropertyBag):
        return dict(value.properties)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.name
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_native(value: Any) -> str:
    """Encode a native value as one line of JSON for the wrapper."""
    return json.dumps(value, default=_json_default)


def decode_native(line: str) -> Any:
    """Decode one JSON line; JSON objects become PropertyBags."""
    return json.loads(line, object_pairs_hook=PropertyBag.from_pairs)


def build_wrapper(script: str) -> str:
    return WRAPPER_TEMPLATE % {"script": script}


class PwshSession(ScriptSession):
    """Session running a PowerShell script in a pwsh child process."""

    def __init__(self, executable: str):
        super().__init__()
        self.executable = executable
        self._process: Optional[subprocess.Popen] = None
        self._stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._terminating: Optional[str] = None
        # Set on stop or once pwsh exits; the feeder stops waiting for input
        self._feeder_stop = threading.Event()

    def dispatch_line(self, line: str, output: DataCollection) -> None:
        """Route one stdout line from the wrapper to output or a stream."""
        line = line.strip()
        if not line:
            return
        try:
            envelope = decode_native(line)
        except json.JSONDecodeError:
            # Raw console writes from the script
            self.streams.information.add(InformationRecord(line))
            return
        if not isinstance(envelope, PropertyBag) or "stream" not in envelope:
            self.streams.information.add(InformationRecord(line))
            return

        stream = envelope["stream"]
        value = envelope["value"] if "value" in envelope else None
        if stream == "output":
            output.add(value)
        elif stream == "error":
            self.streams.error.add(ErrorRecord.from_message(str(value)))
        elif stream == "warning":
            self.streams.warning.add(WarningRecord(str(value)))
        elif stream == "information":
            self.streams.information.add(InformationRecord(value))
        elif stream == "terminating":
            self._terminating = str(value)
            self.streams.error.add(ErrorRecord.from_message(self._terminating))
        else:
            self.logger.warning(f"Unknown stream in pwsh envelope: {stream}")

    def _feed_stdin(self, input: Optional[DataCollection]) -> None:
        stdin = self._process.stdin
        try:
            stdin.write(encode_native(PropertyBag.from_pairs(self.variables.items())) + "\n")
            stdin.flush()
            if input is not None:
                for item in input.consume(self._feeder_stop):
                    stdin.write(encode_native(item) + "\n")
                    stdin.flush()
        except (BrokenPipeError, OSError) as e:
            if not self._feeder_stop.is_set():
                self.logger.warning(f"pwsh closed its input early: {e}")
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def _drain_stderr(self) -> None:
        for line in self._process.stderr:
            self._stderr_tail.append(line.rstrip("\n"))

    def _execute(self, input: Optional[DataCollection], output: DataCollection) -> None:
        fd, wrapper_path = tempfile.mkstemp(prefix="runspace-", suffix=".ps1")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(build_wrapper(self.script))

            self._process = subprocess.Popen(
                [self.executable, "-NoProfile", "-NonInteractive", "-File", wrapper_path],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                bufsize=1,
            )
            if self.stopping:
                self._process.terminate()

            feeder = threading.Thread(target=self._feed_stdin, args=(input,), daemon=True)
            stderr_reader = threading.Thread(target=self._drain_stderr, daemon=True)
            feeder.start()
            stderr_reader.start()

            for line in self._process.stdout:
                if self.stopping:
                    break
                self.dispatch_line(line, output)

            if self.stopping and self._process.poll() is None:
                self._process.terminate()
            returncode = self._process.wait()
            self._feeder_stop.set()
            feeder.join(FEEDER_JOIN_TIMEOUT)
            if feeder.is_alive():
                self.logger.warning("pwsh input feeder did not exit; abandoning thread")
            stderr_reader.join()
        finally:
            os.unlink(wrapper_path)

        if self.stopping:
            raise PipelineStoppedError("The pipeline has been stopped")
        if self._terminating is not None:
            raise ScriptTerminatedError(f"Script terminated: {self._terminating}")
        if returncode != 0:
            stderr_tail = "\n".join(self._stderr_tail)
            raise ScriptTerminatedError(f"pwsh exited with code {returncode}: {stderr_tail}")

    def _on_stop(self) -> None:
        self._feeder_stop.set()
        process = self._process
        if process is not None and process.poll() is None:
            process.terminate()

    def _release(self) -> None:
        process = self._process
        if process is None:
            return
        if process.poll() is None:
            process.kill()
            process.wait()
        for stream in (process.stdin, process.stdout, process.stderr):
            if stream is not None and not stream.closed:
                try:
                    stream.close()
                except OSError:
                    pass


class PwshEngine(Engine):
    """Runs PowerShell scripts through the pwsh executable."""

    name = "pwsh"
    description = "PowerShell 7 (pwsh) child process"

    def __init__(self, executable: str = "pwsh"):
        self.executable = executable

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def create_session(self) -> PwshSession:
        if not self.is_available():
            raise EngineUnavailableError(f"PowerShell executable not found: {self.executable}")
        return PwshSession(self.executable)
