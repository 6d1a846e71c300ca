"""Logging for the connector process.

stdout is the protocol channel, so log events never go there. Under a capture
host stderr is a pipe and each event is one JSON object per line; run from a
terminal the same events are rendered for humans.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor


class _StderrProxy:
    """Writes to whatever ``sys.stderr`` is at the time of the write."""

    def write(self, s: str) -> int:
        return sys.stderr.write(s)

    def flush(self) -> None:
        sys.stderr.flush()

    def isatty(self) -> bool:
        return sys.stderr.isatty()

    def fileno(self) -> int:
        return sys.stderr.fileno()


_stderr_proxy: TextIO = _StderrProxy()  # type: ignore[assignment]


def _renderer(json_logs: bool) -> list[Processor]:
    if json_logs:
        # exceptions become a string field instead of a multi-line traceback
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(verbose: bool = False, json_logs: bool | None = None) -> None:
    """Route connector log events to stderr.

    Args:
        verbose: emit debug events (per-request and per-step tracing)
        json_logs: force JSON lines (True) or console output (False);
            ``None`` picks JSON whenever stderr is not a terminal
    """
    if json_logs is None:
        json_logs = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        *_renderer(json_logs),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_stderr_proxy),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


__all__ = ["configure_logging", "get_logger"]
