"""Effective settings command"""

import click
from rich.console import Console
from rich.table import Table

from conduit.config import Settings

console = Console()


@click.command()
def settings():
    """Show the effective settings (environment and .env applied)"""
    current = Settings()

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in current.model_dump().items():
        table.add_row(key, "(unset)" if value is None else str(value))

    console.print(table)
