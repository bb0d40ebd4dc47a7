"""Middleware discovery command"""

import click
from rich.console import Console
from rich.table import Table

from conduit.config import Settings
from conduit.middleware import discovery

console = Console()


@click.command()
def middleware():
    """List all discovered middleware"""
    settings = Settings()
    found = discovery.get_middleware(settings.middleware_plugins)

    table = Table(title="Discovered Middleware")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Class", no_wrap=True)
    table.add_column("Module", style="dim")
    table.add_column("Description")

    for name in sorted(found):
        cls = found[name]
        get_metadata = getattr(cls, "get_metadata", None)
        description = get_metadata().get("description") if callable(get_metadata) else None
        table.add_row(name, cls.__qualname__, cls.__module__, description or "")

    console.print(table)
    console.print(f"Total: {len(found)} middleware discovered")
