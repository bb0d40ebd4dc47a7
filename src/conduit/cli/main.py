"""Main CLI entry point"""

from pathlib import Path

import click
from dotenv import load_dotenv

from conduit import __version__

# Load .env file from current working directory before importing anything else
# so pydantic-settings sees the variables
_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


@click.group()
@click.version_option(version=__version__, prog_name='conduit')
def cli():
    """conduit - run requests through middleware pipelines"""
    pass


def setup_cli():
    """Register all CLI commands"""
    from .middleware_cmd import middleware
    from .run_cmd import run
    from .settings_cmd import settings

    cli.add_command(run, name='run')
    cli.add_command(middleware, name='middleware')
    cli.add_command(settings, name='settings')


# Setup commands when module is imported
setup_cli()
