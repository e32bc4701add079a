# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for runspace.

Thin host around the execution façade: parses args, builds variables and
input, runs the script, renders records. Script errors and warnings are
logged to stderr; records go to stdout.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer
import yaml

from runspace import __version__
from runspace.config import load_settings
from runspace.engine import available_engines, get_engine
from runspace.event_client import EventClient
from runspace.multiplexer import CancellationToken
from runspace.render import FORMATS, render_records
from runspace.runner import get_record_sequence, get_records
from runspace.values import Record, record_from_json

app = typer.Typer(
    name="runspace",
    help="Run scripts on a script engine and stream their output as records",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def _parse_kv_args(args: Optional[List[str]]) -> dict:
    """Parse key=value arguments into a dict.

    Supports:
    - Booleans: true, false
    - Nulls: null, none
    - Numbers: integers and floats
    - JSON: values starting with { or [ are parsed as JSON
    - Strings: everything else
    """
    if not args:
        return {}
    result = {}
    for arg in args:
        if "=" not in arg:
            raise typer.BadParameter(f"Expected key=value, got: {arg}")
        key, value = arg.split("=", 1)
        if value.lower() == "true":
            result[key] = True
        elif value.lower() == "false":
            result[key] = False
        elif value.lower() == "null" or value.lower() == "none":
            result[key] = None
        elif value.startswith("{") or value.startswith("["):
            # Try JSON parsing for objects and arrays
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                result[key] = value
        else:
            try:
                result[key] = int(value)
            except ValueError:
                try:
                    result[key] = float(value)
                except ValueError:
                    result[key] = value
    return result


def _load_vars_file(path: Path) -> Dict[str, Any]:
    """Load a YAML (or JSON) mapping of variables."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"variables file {path} must contain a mapping")
    return data


def _read_input(source: str) -> Iterator[Record]:
    """Yield records from a JSON-lines file, or stdin when source is '-'."""
    if source == "-":
        for line in sys.stdin:
            if line.strip():
                yield record_from_json(line)
        return
    with open(Path(source).expanduser()) as f:
        for line in f:
            if line.strip():
                yield record_from_json(line)


def _read_script(script_file: Optional[Path], command: Optional[str]) -> str:
    if command is not None and script_file is not None:
        raise typer.BadParameter("Pass either a script file or --command, not both")
    if command is not None:
        return command
    if script_file is None:
        raise typer.BadParameter("A script file or --command is required")
    return script_file.read_text()


@app.command()
def run(
    script_file: Optional[Path] = typer.Argument(None, help="Script file to run"),
    command: Optional[str] = typer.Option(None, "--command", "-c", help="Inline script text"),
    var: Optional[List[str]] = typer.Option(
        None, "--var", "-v", help="Variable as key=value (repeatable)"
    ),
    vars_file: Optional[Path] = typer.Option(
        None, "--vars-file", help="YAML or JSON mapping of variables"
    ),
    input_source: Optional[str] = typer.Option(
        None, "--input", "-i", help="JSON-lines file of input records, or - for stdin"
    ),
    engine_name: Optional[str] = typer.Option(None, "--engine", "-e", help="Engine: python, pwsh"),
    stream: bool = typer.Option(True, "--stream/--batch", help="Render records as they arrive"),
    format: str = typer.Option("json", "--format", "-f", help="Output format: json, table, csv"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config file"),
    events: Optional[Path] = typer.Option(None, "--events", help="Append run events to this JSONL file"),
):
    """Run a script and print its output records."""
    if format not in FORMATS:
        typer.echo(f"Error: unknown format '{format}' (expected {', '.join(FORMATS)})", err=True)
        raise typer.Exit(1)

    try:
        settings = load_settings(config_path)
    except Exception as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(1)

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(levelname)s %(name)s: %(message)s",
    )

    script = _read_script(script_file, command)
    name = engine_name or settings.engine
    events_path = events or settings.events_path
    event_client = EventClient(events_path, engine=name) if events_path else None
    cancellation = CancellationToken()
    count = 0

    try:
        variables = {}
        if vars_file is not None:
            variables.update(_load_vars_file(vars_file))
        variables.update(_parse_kv_args(var))

        engine = get_engine(name, pwsh_path=settings.pwsh_path)
        input_records = _read_input(input_source) if input_source else None

        if event_client:
            event_client.started(
                script,
                variables=variables,
                has_input=input_records is not None,
                mode="stream" if stream else "batch",
            )

        options = dict(
            engine=engine,
            cancellation=cancellation,
            buffer_size=settings.buffer_size,
        )
        if stream:
            records = get_record_sequence(script, variables, input_records, **options)
        else:
            records = get_records(script, variables, input_records, **options)
        count = render_records(records, format_type=format)

        if event_client:
            event_client.completed(count)

    except KeyboardInterrupt:
        cancellation.cancel()
        if event_client:
            event_client.failed(count, "Interrupted", cancelled=True)
        raise typer.Exit(130)
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        if event_client:
            event_client.failed(count, str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def engines(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config file"),
):
    """List script engines and whether they are available."""
    try:
        settings = load_settings(config_path)
    except Exception as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(1)

    for name, available, description in available_engines(pwsh_path=settings.pwsh_path):
        default = " (default)" if name == settings.engine else ""
        status = "available" if available else "not found"
        typer.echo(f"  {name}{default}: {description} [{status}]")


@app.command()
def version():
    """Show version information."""
    typer.echo(f"runspace version {__version__}")


# Static commands
from runspace.commands import config

app.add_typer(config.app, name="config")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
