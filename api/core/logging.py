"""
Logging configuration for the API process and the transform worker.

Request-scoped code uses the contextual logger so lines carry the request ID:

    from middleware.logging_middleware import get_logger
    logger = get_logger(__name__)

The worker logs through structlog with the request ID bound as a context variable, and
writes to stderr because its stdout carries the job outcome.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TextIO

import structlog

from core.config import settings

FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("uvicorn.access", "uvicorn.error", "aiohttp", "httpx", "httpcore", "replicate", "PIL")


def _renderer(stream: TextIO):
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=stream.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def _file_handler(filename: str, level: int) -> RotatingFileHandler:
    log_dir = settings.resolved_server_root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_dir / filename, maxBytes=MAX_LOG_BYTES, backupCount=5)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(stream: TextIO = sys.stdout, log_files: bool = True):
    """
    Configure structlog and the root logger; `stream` receives console output.

    Only the API process owns the rotating log files. Workers pass `log_files=False` and
    their stderr is relayed into the API log by the job runner.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(stream),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(log_level)
    if settings.log_format == "json":
        # structlog has already rendered the event
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"))
    root_logger.addHandler(console_handler)

    # Production keeps rotating files under <server root>/logs
    if log_files and settings.environment == "production":
        root_logger.addHandler(_file_handler("visualizer.log", logging.DEBUG))
        root_logger.addHandler(_file_handler("visualizer_errors.log", logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={settings.log_level}, format={settings.log_format}, env={settings.environment}"
    )
