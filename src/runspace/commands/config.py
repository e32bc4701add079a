# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for runspace.

Provides basic configuration validation.
"""

import typer

from runspace.config import config_path, load_settings

app = typer.Typer(help="Manage and validate configuration")


@app.command()
def validate(
    path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the config file is valid YAML with known keys and values.
    """
    typer.echo("Validating configuration...")
    typer.echo()

    try:
        settings = load_settings(path)
        resolved = config_path(path)
        source = str(resolved) if resolved.exists() else "defaults (no config file)"
        typer.echo("Configuration structure is valid")
        typer.echo()
        typer.echo(f"Source: {source}")
        typer.echo(f"Engine: {settings.engine}")
        typer.echo(f"pwsh path: {settings.pwsh_path}")
        typer.echo(f"Buffer size: {settings.buffer_size}")
        typer.echo(f"Log level: {settings.log_level}")
        if settings.events_path:
            typer.echo(f"Events: {settings.events_path}")
        typer.echo()
        typer.echo("Configuration validation complete!")
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except Exception as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)
