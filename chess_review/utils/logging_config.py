# chess_review/utils/logging_config.py
"""
Configures application-wide structured logging using structlog.

Engine conversations are logged at DEBUG with the channel name and the review
epoch bound through `structlog.contextvars`, so one stalled search can be
followed through the log across the live and review engines.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.types import Processor

# Loggers of libraries that are chatty at DEBUG and rarely useful here.
_QUIET_LOGGERS = ("asyncio",)


def _with_renderer(handler: logging.Handler, pre_chain: List[Processor], renderer: Processor) -> logging.Handler:
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(foreign_pre_chain=pre_chain, processor=renderer))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_to_console: bool = True,
    log_file: Optional[Path] = None,
    force_json_console: bool = False,
    extra_processors: Optional[List[Processor]] = None,
) -> None:
    """
    Routes structlog through the standard library's logging, so that events
    from this package and from third-party libraries share one format.

    Args:
        log_level: Root level name, e.g. "DEBUG" to see every engine command.
        log_to_console: Render to stdout (colored when stdout is a terminal).
        log_file: Optionally also append JSON lines to this file.
        force_json_console: Render JSON on the console instead.
        extra_processors: Processors inserted before rendering.
    """
    pre_chain: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    structlog.configure(
        processors=[*pre_chain, *(extra_processors or []), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: List[logging.Handler] = []
    if log_to_console:
        console_renderer: Processor = (structlog.processors.JSONRenderer() if force_json_console
                                       else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
        handlers.append(_with_renderer(logging.StreamHandler(sys.stdout), pre_chain, console_renderer))
    if log_file:
        handlers.append(_with_renderer(logging.FileHandler(log_file, mode="a", encoding="utf-8"),
                                       pre_chain, structlog.processors.JSONRenderer()))

    logging.basicConfig(handlers=handlers, level=log_level.upper(), force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.INFO, logging.getLogger().level))
