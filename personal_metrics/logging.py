"""Logging configuration for the API, the CLI and sync jobs."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty transport loggers stay at WARNING unless the app runs at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    stream: TextIO | None = None,
) -> None:
    """Configure the root logger once for the whole process.

    ``stream`` defaults to stdout; the CLI passes stderr so that its JSON
    output stays machine readable.
    """
    resolved_level = getattr(logging, level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=resolved_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
