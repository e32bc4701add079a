# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""runspace: run scripts on a script engine and stream their output as records."""

__version__ = "0.1.0"

from runspace.convert import from_native, normalize_native, to_native
from runspace.errors import (
    ArgumentTypeError,
    InvalidKeyError,
    NullInputError,
    RunspaceError,
    ScriptRuntimeError,
    ScriptTerminatedError,
)
from runspace.multiplexer import CancellationToken
from runspace.native import PropertyBag
from runspace.runner import (
    get_record_sequence,
    get_records,
    run_script,
    run_script_streaming,
)
from runspace.session import create_session
from runspace.values import PRIMITIVE_KEY, Record

__all__ = [
    "__version__",
    "PRIMITIVE_KEY",
    "Record",
    "PropertyBag",
    "to_native",
    "from_native",
    "normalize_native",
    "create_session",
    "run_script",
    "run_script_streaming",
    "get_record_sequence",
    "get_records",
    "CancellationToken",
    "RunspaceError",
    "NullInputError",
    "InvalidKeyError",
    "ArgumentTypeError",
    "ScriptRuntimeError",
    "ScriptTerminatedError",
]
