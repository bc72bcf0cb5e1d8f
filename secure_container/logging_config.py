from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import Settings

LOG_DIR = Path("logs")
LOG_FILE_NAME = "secure-container.log"


def setup_logging(settings: Settings, log_level: str | None = None) -> None:
    """Configure logging for the application.

    Args:
        settings: Application settings
        log_level: Override the log level from settings
    """
    # Determine log level
    log_level = log_level or settings.log_level
    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = logging.DEBUG if settings.debug else logging.INFO

    # Create formatter
    formatter: logging.Formatter
    if settings.log_to_file:
        # structlog events come through the handlers too, render them like
        # stdlib records so console and file carry the same lines
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=_renderer(settings.debug),
            foreign_pre_chain=_shared_processors(),
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # Console handler with Rich for better formatting
    console_handler = RichHandler(
        rich_tracebacks=True,
        show_path=settings.debug,
        show_time=False,  # We handle time in formatter
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler only when explicitly requested, the container fs may be read-only
    if settings.log_to_file:
        LOG_DIR.mkdir(exist_ok=True)

        file_handler = logging.FileHandler(LOG_DIR / LOG_FILE_NAME, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Set root logger level
    root_logger.setLevel(level)

    _configure_third_party_loggers()

    _configure_structlog(
        debug=settings.debug, level=level, through_stdlib=settings.log_to_file
    )

    logger = get_logger(__name__)
    logger.info("Logging configured", level=logging.getLevelName(level))


def _configure_third_party_loggers() -> None:
    """Route uvicorn through the root handlers and quiet its access log."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)


def _renderer(debug: bool):
    if debug:
        # Development: pretty console output
        return structlog.dev.ConsoleRenderer(colors=False)
    # Production: JSON, one object per line for log collectors
    return structlog.processors.JSONRenderer()


def _shared_processors() -> list:
    return [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _configure_structlog(debug: bool, level: int, through_stdlib: bool) -> None:
    """Configure structlog for structured logging.

    By default structlog writes straight to stdout. With ``through_stdlib``
    its events are handed to the stdlib root handlers instead, so the log
    file receives them alongside uvicorn's records.
    """
    if through_stdlib:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *_shared_processors(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )
        return

    structlog.configure(
        processors=[*_shared_processors(), _renderer(debug)],
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    """Get a logger with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)
