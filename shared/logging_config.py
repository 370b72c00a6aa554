"""Logging configuration for the FP16 Demotion Analysis service."""

import logging
import os
import sys
from typing import Optional


LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        if sys.stdout.isatty():  # Only use colors for terminal output
            record = logging.makeLogRecord(record.__dict__)
            log_color = self.COLORS.get(record.levelname, '')
            record.levelname = f"{log_color}{record.levelname}{self.RESET}"
            record.name = f"\033[34m{record.name}{self.RESET}"  # Blue for logger name

        return super().format(record)


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Setup centralized logging configuration for the service."""

    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    level = getattr(logging, log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    # force=True so a second call (CLI after import, reloads) replaces handlers
    logging.basicConfig(level=level, handlers=handlers, force=True)

    configure_pipeline_loggers(level)
    configure_external_loggers()


def configure_pipeline_loggers(level: int = logging.DEBUG) -> None:
    """Configure logging for pipeline modules."""
    pipeline_loggers = [
        'pipeline.orchestrator',
        'pipeline.workspace_manager',
        'pipeline.tool_invoker',
        'pipeline.artifact_collector',
        'shared.float_analysis',
        'api',
    ]

    for logger_name in pipeline_loggers:
        logging.getLogger(logger_name).setLevel(level)


def configure_external_loggers() -> None:
    """Configure logging levels for external libraries."""
    external_loggers = {
        'uvicorn': logging.INFO,
        'uvicorn.access': logging.WARNING,
        'asyncio': logging.WARNING,
        'multipart': logging.WARNING,
        'httpx': logging.WARNING,
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(level)


def get_pipeline_logger(component: str) -> logging.Logger:
    """Get a properly configured logger for a pipeline component."""
    return logging.getLogger(f"pipeline.{component}")
