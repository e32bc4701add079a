# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""In-process engine that runs Python script text.

Each session executes its script with exec() in a fresh namespace holding the
bound variables and the host API:

    write_output(*objs)       primary output
    write_error(message)      error stream
    write_warning(message)    warning stream
    write_information(msg)    information stream
    input                     iterator over pipeline input
    PropertyBag               dynamic object constructor
    stopping()                True once the session has been asked to stop

Example script:

    for item in input:
        write_output(PropertyBag(name=item.name, total=item.count * 2))
"""

import builtins
from typing import Any, Dict, Optional

from runspace.engine.base import Engine, ScriptSession
from runspace.errors import InvalidKeyError, PipelineStoppedError, ScriptTerminatedError
from runspace.native import (
    DataCollection,
    ErrorRecord,
    InformationRecord,
    PropertyBag,
    WarningRecord,
)

SCRIPT_FILENAME = "<script>"

# Names the host API binds in every script namespace
RESERVED_NAMES = frozenset(
    [
        "write_output",
        "write_error",
        "write_warning",
        "write_information",
        "input",
        "PropertyBag",
        "stopping",
    ]
)


class PythonSession(ScriptSession):
    """Session running a Python script on its worker thread."""

    def set_variable(self, name: str, value: Any) -> None:
        """Bind a variable, refusing names taken by the host API.

        Raises:
            InvalidKeyError: If name is one of RESERVED_NAMES
        """
        if name in RESERVED_NAMES:
            raise InvalidKeyError(f"Variable name '{name}' is reserved by the python engine")
        super().set_variable(name, value)

    def _check_stop(self) -> None:
        if self.stopping:
            raise PipelineStoppedError("The pipeline has been stopped")

    def _host_api(
        self, input: Optional[DataCollection], output: DataCollection
    ) -> Dict[str, Any]:
        def write_output(*objs: Any) -> None:
            for obj in objs:
                self._check_stop()
                output.add(obj)

        def write_error(message: Any) -> None:
            self._check_stop()
            self.streams.error.add(ErrorRecord.from_message(str(message)))

        def write_warning(message: Any) -> None:
            self._check_stop()
            self.streams.warning.add(WarningRecord(str(message)))

        def write_information(message: Any) -> None:
            self._check_stop()
            self.streams.information.add(InformationRecord(message))

        if input is not None:
            pipeline_input = input.consume(self._stop_event)
        else:
            pipeline_input = iter(())

        return {
            "write_output": write_output,
            "write_error": write_error,
            "write_warning": write_warning,
            "write_information": write_information,
            "input": pipeline_input,
            "PropertyBag": PropertyBag,
            "stopping": lambda: self.stopping,
        }

    def _execute(self, input: Optional[DataCollection], output: DataCollection) -> None:
        namespace: Dict[str, Any] = {"__name__": "__runspace__", "__builtins__": builtins}
        namespace.update(self.variables)
        namespace.update(self._host_api(input, output))

        try:
            code = compile(self.script, SCRIPT_FILENAME, "exec")
            exec(code, namespace)
        except PipelineStoppedError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            self.streams.error.add(ErrorRecord.from_message(message))
            raise ScriptTerminatedError(f"Script terminated: {message}") from e


class PythonEngine(Engine):
    """Runs Python scripts in-process."""

    name = "python"
    description = "In-process Python interpreter"

    def create_session(self) -> PythonSession:
        return PythonSession()
