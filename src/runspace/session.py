# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Session builder: prepare an isolated session for one script run."""

import logging
from collections.abc import Mapping
from typing import Optional, Union

from runspace.convert import to_native
from runspace.engine import Engine, ScriptSession, get_engine
from runspace.values import Record

logger = logging.getLogger(__name__)


def create_session(
    script: str,
    variables: Optional[Union[Record, Mapping]] = None,
    engine: Optional[Engine] = None,
) -> ScriptSession:
    """
    Create a session with the script registered and variables bound.

    The script is not started.

    Args:
        script: Script body
        variables: Record (or plain mapping) of variable name -> value, bound in field order
        engine: Engine to create the session from (default: python engine)

    Returns:
        A ScriptSession ready for begin_invoke()

    Raises:
        ArgumentTypeError: If a variable value has no native form
    """
    if engine is None:
        engine = get_engine()
    if variables is not None and not isinstance(variables, Record):
        variables = Record.from_dict(variables)

    session = engine.create_session()
    try:
        if variables is not None:
            for name, value in variables.fields:
                session.set_variable(name, to_native(value))
            logger.debug(f"Bound {len(variables)} variable(s): {', '.join(variables)}")
        session.add_script(script)
    except Exception:
        session.dispose()
        raise
    return session
