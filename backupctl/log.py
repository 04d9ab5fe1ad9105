"""Logging setup: structlog on top of stdlib logging.

Console output goes to stderr. When a log directory is given, a second handler
writes to ``{log_dir}/{prefix}.log`` and rotates the file at midnight.

Usage:
    configure_logging("info", log_dir="logs", prefix="backupctl")
    logger = get_logger(__name__)
    logger.info("backup_completed", alias="main-db", artifact=path)
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    log_level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    prefix: str = "backupctl",
    json_logs: bool = False,
) -> None:
    """Configure process-wide logging.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory for the rotating log file; console only if None.
        prefix: Log file name prefix.
        json_logs: Render the file handler as JSON lines instead of key=value.
    """
    structlog.configure(
        processors=_SHARED_PROCESSORS + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
    root.addHandler(console)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_path / f"{prefix}.log",
            when="midnight",
            utc=True,
            encoding="utf-8",
        )
        renderer = (
            structlog.processors.JSONRenderer()
            if json_logs
            else structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])
        )
        file_handler.setFormatter(_formatter(renderer))
        root.addHandler(file_handler)

    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger for a module."""
    return structlog.get_logger(name)
