"""structlog setup and request-scoped log context for clipfeed."""

import logging
import sys
from typing import TextIO

import structlog


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog for the ranking jobs and the CLI.

    Logs go to ``output`` (stderr by default) so command results written to
    stdout stay machine-readable.

    Args:
        level: Minimum level to emit.
        output: Stream the log lines are written to.
        json_format: Render JSON lines; otherwise use the console renderer.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)


def bind_request_context(request_id: str, viewer_id: str | None = None) -> None:
    """Attach a feed request's identifiers to every later log event.

    Args:
        request_id: Unique request identifier.
        viewer_id: Viewer the request is served for (None when anonymous).
    """
    structlog.contextvars.bind_contextvars(request_id=request_id, viewer_id=viewer_id)


def clear_request_context() -> None:
    """Drop the identifiers bound by ``bind_request_context``."""
    structlog.contextvars.unbind_contextvars("request_id", "viewer_id")
