"""
Command-line entry point: live metrics and stress-test control.
"""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .common.logging_config import setup_colored_logging
from .config import LoadscopeConfig, resolve_config
from .console import app
from .exceptions import ConfigurationError

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def error_exit(message: str, code: int = 1):
    """Print an error message to stderr and exit."""
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(code)


def _run(coro) -> int:
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("\nStopped by user.", err=True)
        return 130


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__, "-v", "--version", help="Show the CLI version and exit."
)
@click.option(
    "--base-url",
    "-u",
    default=None,
    help="Base URL of the backend (env: LOADSCOPE_BASE_URL, default: http://localhost:8090)",
)
@click.option(
    "--api-key",
    "-k",
    default=None,
    help="Static key sent as X-API-KEY on the stress-test feed (env: LOADSCOPE_API_KEY)",
)
@click.option(
    "--connect-timeout",
    type=float,
    default=None,
    help="Seconds allowed to connect to a feed (env: LOADSCOPE_CONNECT_TIMEOUT)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for diagnostics written to stderr",
)
@click.pass_context
def cli(
    ctx: click.Context,
    base_url: Optional[str],
    api_key: Optional[str],
    connect_timeout: Optional[float],
    log_level: str,
):
    """Watch a service's load and run stress tests against it."""
    setup_colored_logging(level=getattr(logging, log_level.upper()))
    try:
        ctx.obj = resolve_config(
            base_url=base_url, api_key=api_key, connect_timeout=connect_timeout
        )
    except ConfigurationError as e:
        error_exit(str(e), code=2)


@cli.command("metrics")
@click.option(
    "--once",
    is_flag=True,
    help="Print the first snapshot and exit instead of watching live",
)
@click.pass_obj
def metrics(config: LoadscopeConfig, once: bool):
    """
    Show live global rate-limit load, active users and URL count.

    \b
    Examples:
        loadscope metrics
        loadscope --base-url https://pety.to metrics --once
    """
    console = Console()
    sys.exit(_run(app.watch_metrics(config, console, once=once)))


@cli.command("stress-test")
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress streaming output, only report the result",
)
@click.option(
    "--save-transcript",
    "transcript_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the run's events and final state to this YAML file",
)
@click.pass_obj
def stress_test(config: LoadscopeConfig, quiet: bool, transcript_path: Optional[Path]):
    """
    Start a stress test and stream its output. Ctrl-C stops the test.

    Exits 0 when the test completes, 1 when it fails or is rejected.
    """
    console = Console()
    sys.exit(
        _run(
            app.run_stress_test(
                config, console, quiet=quiet, transcript_path=transcript_path
            )
        )
    )


@cli.command("dashboard")
@click.option(
    "--no-test",
    is_flag=True,
    help="Only show metrics; do not start a stress test",
)
@click.option(
    "--duration",
    type=float,
    default=None,
    help="Stop after this many seconds (default: run until Ctrl-C)",
)
@click.pass_obj
def dashboard(config: LoadscopeConfig, no_test: bool, duration: Optional[float]):
    """Live metrics and a stress-test run in a single view."""
    console = Console()
    sys.exit(
        _run(
            app.run_dashboard(
                config, console, start_test=not no_test, duration=duration
            )
        )
    )


def main():
    cli()


if __name__ == "__main__":
    main()
