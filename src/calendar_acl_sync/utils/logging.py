"""Logging configuration for Calendar ACL Sync application."""

import logging
import sys
from pathlib import Path
from typing import Any, Optional, Union

LOGGER_NAME = "calendar_acl_sync"

# Below DEBUG, for per-item chatter
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        level: Logging level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.getLevelName(level.upper()))

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)
    console_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


class BoundLogger(logging.LoggerAdapter):
    """Logger carrying key=value bindings that are appended to every message.

    Exposes ``trace`` and ``fatal`` next to the stdlib levels, and ``child()``
    to derive a sub-logger with extra bindings.
    """

    def __init__(self, logger: logging.Logger, bindings: Optional[dict[str, Any]] = None):
        super().__init__(logger, dict(bindings or {}))

    def process(self, msg, kwargs):
        if self.extra:
            context = " ".join(f"{k}={v}" for k, v in self.extra.items())
            msg = f"{msg} [{context}]"
        return msg, kwargs

    def trace(self, msg, *args, **kwargs) -> None:
        self.log(TRACE, msg, *args, **kwargs)

    def fatal(self, msg, *args, **kwargs) -> None:
        self.critical(msg, *args, **kwargs)

    def child(self, **bindings: Any) -> "BoundLogger":
        return BoundLogger(self.logger, {**self.extra, **bindings})


def bind_logger(
    logger: Union[logging.Logger, BoundLogger, None],
    name: str,
) -> BoundLogger:
    """Wrap an injected logger (or the module logger ``name``) as a BoundLogger."""
    if isinstance(logger, BoundLogger):
        return logger
    return BoundLogger(logger or logging.getLogger(name))
