"""
Logging configuration for the service and the CLI
"""
import logging
import sys
from typing import Optional, TextIO

from voice_intake.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "multipart")


def setup_logging(level: Optional[str] = None, stream: TextIO = sys.stdout) -> logging.Logger:
    """
    Configure the root logger once for the process.

    ``level`` overrides ``settings.log_level``; the CLI logs to stderr so
    log lines stay out of its rendered output.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(name)
