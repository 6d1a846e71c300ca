"""Command line entry point: one request in on stdin, responses out on stdout."""

from __future__ import annotations

import asyncio
import sys

import click

from .config import SourceSettings
from .connector import run_connector
from .errors import SourceError
from .lib.log import configure_logging, get_logger

logger = get_logger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--json-logs/--console-logs",
    "json_logs",
    default=None,
    help="Log format on stderr (default: JSON unless stderr is a terminal)",
)
def cli(verbose: bool, json_logs: bool | None) -> None:
    """Capture ballchasing.com replays over the connector protocol."""
    try:
        settings = SourceSettings.load(verbose=verbose or None, json_logs=json_logs)
    except SourceError as exc:
        configure_logging(verbose=verbose, json_logs=json_logs)
        logger.error("invalid settings", error=str(exc))
        raise SystemExit(1) from exc

    configure_logging(verbose=settings.verbose, json_logs=settings.json_logs)
    reader = sys.stdin.buffer
    writer = sys.stdout.buffer
    try:
        asyncio.run(run_connector(reader, writer, settings))
    except SourceError as exc:
        logger.error("connector failed", error=str(exc), error_type=type(exc).__name__)
        raise SystemExit(1) from exc


__all__ = ["cli"]
