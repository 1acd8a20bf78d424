"""
Logging setup for hosts embedding the pipeline.

The library itself only calls ``structlog.get_logger()``; the host decides
where records go by calling :func:`setup_logging` once at start-up.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from .config import get_settings


def setup_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """
    Route structlog through standard logging (stdout plus optional file).

    Level and file default to ``app_log_level`` and ``log_file`` from settings.
    """
    settings = get_settings()
    level = level or settings.app_log_level
    log_file = log_file if log_file is not None else settings.log_file

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.KeyValueRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
