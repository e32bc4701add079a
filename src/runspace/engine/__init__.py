# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Script engines and the engine registry."""

from typing import List, Tuple

from runspace.engine.base import Engine, ScriptSession, SessionState, Streams
from runspace.engine.pwsh import PwshEngine, PwshSession
from runspace.engine.python import PythonEngine, PythonSession
from runspace.errors import EngineNotFoundError

DEFAULT_ENGINE = "python"

ENGINE_NAMES = ("python", "pwsh")


def get_engine(name: str = DEFAULT_ENGINE, pwsh_path: str = "pwsh") -> Engine:
    """
    Get an engine by name.

    Args:
        name: Engine name ("python" or "pwsh")
        pwsh_path: Executable used by the pwsh engine

    Raises:
        EngineNotFoundError: If no engine has that name
    """
    if name == "python":
        return PythonEngine()
    elif name == "pwsh":
        return PwshEngine(executable=pwsh_path)
    raise EngineNotFoundError(
        f"Unknown engine: {name}. Available engines: {', '.join(ENGINE_NAMES)}"
    )


def available_engines(pwsh_path: str = "pwsh") -> List[Tuple[str, bool, str]]:
    """List (name, available, description) for every registered engine."""
    result = []
    for name in ENGINE_NAMES:
        engine = get_engine(name, pwsh_path=pwsh_path)
        result.append((name, engine.is_available(), engine.description))
    return result


__all__ = [
    "DEFAULT_ENGINE",
    "ENGINE_NAMES",
    "Engine",
    "PwshEngine",
    "PwshSession",
    "PythonEngine",
    "PythonSession",
    "ScriptSession",
    "SessionState",
    "Streams",
    "available_engines",
    "get_engine",
]
