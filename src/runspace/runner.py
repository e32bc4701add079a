# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Execution façade.

Entry points for running a script:
- run_script: run to completion, return every output object
- run_script_streaming: lazy iterator, items arrive while the script runs
- get_record_sequence / get_records: same, with each item converted to a Record

Each call builds its own session; the script starts when the result is
first iterated (run_script iterates immediately).
"""

from collections.abc import Mapping
from typing import Any, Iterable, Iterator, List, Optional, Union

from runspace.convert import from_native
from runspace.engine import Engine
from runspace.multiplexer import DEFAULT_BUFFER_SIZE, CancellationToken, ScriptRun
from runspace.session import create_session
from runspace.values import Record

Variables = Optional[Union[Record, Mapping]]


def run_script_streaming(
    script: str,
    variables: Variables = None,
    input: Optional[Iterable[Any]] = None,
    *,
    logger: Optional[Any] = None,
    engine: Optional[Engine] = None,
    cancellation: Optional[CancellationToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> Iterator[Any]:
    """
    Run a script and yield its output objects as they are produced.

    The session is built (and variables converted) immediately; the script
    starts on the first pull. Stopping iteration stops the script and
    releases the session. Cancellation ends the sequence after the items
    already produced, without raising.

    An iterator that is never advanced never starts its session, and closing
    it does not dispose that session. The built-in engines hold no thread or
    process before the script starts, so nothing is left running.

    Args:
        script: Script body
        variables: Record (or mapping) of variables to bind
        input: Records fed to the script's pipeline input while it runs
        logger: Receives script errors, warnings and information (default: runspace.script)
        engine: Engine to run on (default: python)
        cancellation: Token that stops the run when cancelled
        buffer_size: Bound on output items held for the consumer

    Returns:
        Single-pass iterator of native output objects

    Raises:
        ArgumentTypeError: If a variable has no native form
        ScriptTerminatedError: From the iterator, after the last item, if the script failed
    """
    session = create_session(script, variables, engine)
    try:
        run = ScriptRun(
            session,
            logger=logger,
            input=input,
            cancellation=cancellation,
            buffer_size=buffer_size,
        )
    except Exception:
        session.dispose()
        raise
    return iter(run)


def run_script(
    script: str,
    variables: Variables = None,
    input: Optional[Iterable[Any]] = None,
    *,
    logger: Optional[Any] = None,
    engine: Optional[Engine] = None,
    cancellation: Optional[CancellationToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> List[Any]:
    """Run a script to completion and return all of its output objects, in order."""
    return list(
        run_script_streaming(
            script,
            variables,
            input,
            logger=logger,
            engine=engine,
            cancellation=cancellation,
            buffer_size=buffer_size,
        )
    )


def get_record_sequence(
    script: str,
    variables: Variables = None,
    input: Optional[Iterable[Any]] = None,
    *,
    logger: Optional[Any] = None,
    engine: Optional[Engine] = None,
    cancellation: Optional[CancellationToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> Iterator[Record]:
    """Run a script and yield each output object converted to a Record."""
    items = run_script_streaming(
        script,
        variables,
        input,
        logger=logger,
        engine=engine,
        cancellation=cancellation,
        buffer_size=buffer_size,
    )
    return _convert_all(items)


def _convert_all(items: Iterator[Any]) -> Iterator[Record]:
    try:
        for item in items:
            yield from_native(item)
    finally:
        items.close()


def get_records(
    script: str,
    variables: Variables = None,
    input: Optional[Iterable[Any]] = None,
    *,
    logger: Optional[Any] = None,
    engine: Optional[Engine] = None,
    cancellation: Optional[CancellationToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> List[Record]:
    """Run a script to completion and convert every output object to a Record."""
    items = run_script(
        script,
        variables,
        input,
        logger=logger,
        engine=engine,
        cancellation=cancellation,
        buffer_size=buffer_size,
    )
    return [from_native(item) for item in items]
