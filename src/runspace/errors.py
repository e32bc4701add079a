# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Exception taxonomy for runspace.

Conversion errors surface synchronously to the caller. Engine-reported
error records are wrapped in ScriptRuntimeError and logged, never raised
by a run.
"""


class RunspaceError(Exception):
    """Base class for all runspace errors."""

    pass


class NullInputError(RunspaceError, ValueError):
    """Raised when a required native object is None."""

    pass


class InvalidKeyError(RunspaceError, ValueError):
    """Raised when a native map has a null key, or a variable name cannot be bound."""

    pass


class ArgumentTypeError(RunspaceError, TypeError):
    """Raised when a value of the wrong type reaches an internal dispatcher."""

    pass


class ScriptRuntimeError(RunspaceError):
    """An error record reported by the engine while a script runs."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScriptTerminatedError(RunspaceError):
    """Raised when a script stops with a terminating error."""

    pass


class PipelineStoppedError(RunspaceError):
    """Raised inside a running script once its session is stopped."""

    pass


class InvalidOperationError(RunspaceError):
    """Raised when an object is used in a state that does not allow it."""

    pass


class EngineNotFoundError(RunspaceError):
    """Raised when no engine is registered under the requested name."""

    pass


class EngineUnavailableError(RunspaceError):
    """Raised when an engine's runtime cannot be found on this host."""

    pass


class ConfigError(RunspaceError):
    """Raised when configuration is invalid."""

    pass
