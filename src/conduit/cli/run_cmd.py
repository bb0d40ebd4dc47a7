"""Run requests through a string pipeline built from middleware names"""

import asyncio
import inspect
import logging
import sys

import click
from rich.console import Console

from conduit.builder import PipelineBuilder
from conduit.config import Settings
from conduit.exceptions import MiddlewareConfigurationError, OperationCancelledError
from conduit.logging_config import configure_logging
from conduit.middleware import discovery
from conduit.middleware.request_logger import use_request_logging
from conduit.pipeline import Pipeline

logger = logging.getLogger(__name__)
console = Console(stderr=True)


def setup_logging(verbose: bool, settings: Settings):
    """Configure logging from settings, or DEBUG when verbose"""
    configure_logging("debug" if verbose else settings.log_level, settings.log_format)


def _read_requests(requests: tuple[str, ...]) -> list[str]:
    if requests:
        return list(requests)
    stdin = click.get_text_stream('stdin')
    return [line.rstrip("\n") for line in stdin if line.strip()]


def build_pipeline(
    settings: Settings,
    middleware_names: tuple[str, ...],
    prefix: str | None = None,
    timeout: float | None = None,
    log_requests: bool = False,
) -> Pipeline[str, str]:
    """Build a string pipeline from discovered middleware names

    Raises:
        click.BadParameter: If a middleware name is unknown
    """
    builder = PipelineBuilder(settings)
    pipeline = builder.build(timeout) if timeout is not None else builder.build()

    if log_requests:
        use_request_logging(pipeline)

    for name in middleware_names:
        middleware_class = discovery.get_middleware_class(name, settings.middleware_plugins)
        if middleware_class is None:
            available = ", ".join(discovery.get_available_middleware(settings.middleware_plugins))
            raise click.BadParameter(
                f"Unknown middleware '{name}' (available: {available or 'none'})",
                param_hint="'--use'",
            )

        kwargs = {}
        if prefix is not None and 'prefix' in inspect.signature(middleware_class).parameters:
            kwargs['prefix'] = prefix
        pipeline.use(middleware_class, **kwargs)

    return pipeline


async def _invoke_all(pipeline: Pipeline[str, str], requests: list[str]) -> list[str | None]:
    return [await pipeline.invoke(request) for request in requests]


@click.command()
@click.argument('requests', nargs=-1)
@click.option('--use', '-u', 'middleware_names', multiple=True,
              help='Middleware to add, in order (repeatable)')
@click.option('--prefix', '-p', default=None, help='Prefix passed to middleware that take one')
@click.option('--timeout', '-t', type=click.FloatRange(min=0), default=None,
              help='Request timeout in seconds (default: REQUEST_TIMEOUT)')
@click.option('--log-requests', is_flag=True, help='Log one record per request')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def run(
    requests: tuple[str, ...],
    middleware_names: tuple[str, ...],
    prefix: str | None,
    timeout: float | None,
    log_requests: bool,
    verbose: bool
):
    """Invoke a pipeline for each REQUEST (or each stdin line) and print the responses."""
    settings = Settings()
    setup_logging(verbose, settings)

    pipeline = build_pipeline(settings, middleware_names, prefix, timeout, log_requests)

    try:
        pipeline.prepare()
    except MiddlewareConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(2)

    try:
        responses = asyncio.run(_invoke_all(pipeline, _read_requests(requests)))
    except OperationCancelledError:
        console.print("[red]Request cancelled[/red]")
        sys.exit(1)
    finally:
        pipeline.close()

    for response in responses:
        click.echo("" if response is None else response)
