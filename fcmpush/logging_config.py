"""Structured logging configuration with JSON output."""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter


class DispatchIDFilter(logging.Filter):
    """Add dispatch ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add dispatch_id field to log record."""
        from fcmpush.utils.dispatch_context import get_dispatch_id

        record.dispatch_id = get_dispatch_id() or "no-dispatch-id"
        return True


def configure_json_logging(
    log_level: str = "INFO",
    use_json: bool = True,
) -> None:
    """Configure logging with optional JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Whether to use JSON output (True) or text output (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(getattr(logging, log_level.upper()))
    stream_handler.addFilter(DispatchIDFilter())

    if use_json:
        json_formatter = JsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(name)s %(message)s %(dispatch_id)s",
            timestamp=True,
        )
        stream_handler.setFormatter(json_formatter)
    else:
        text_formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(dispatch_id)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        stream_handler.setFormatter(text_formatter)

    root_logger.addHandler(stream_handler)

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)
