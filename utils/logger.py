"""
utils/logger.py
---------------
Centralized logging configuration.
All modules should use `get_logger(__name__)` to obtain a logger instance.
The bot token never reaches the output: Telegram errors and request URLs embed it.
"""

import logging
import sys

from config import LOG_LEVEL, TELEGRAM_BOT_TOKEN

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_REDACTED = "<bot-token>"
_initialized = False

# httpx logs one INFO line per Bot API request.
_QUIET_LOGGERS = ("httpx", "httpcore")


class SecretRedactingFormatter(logging.Formatter):
    """Formatter that masks the given secrets in the final line, tracebacks included."""

    def __init__(self, fmt: str, datefmt: str, secrets: tuple[str, ...]):
        super().__init__(fmt, datefmt)
        self._secrets = tuple(s for s in secrets if s)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for secret in self._secrets:
            text = text.replace(secret, _REDACTED)
        return text


def _init_logging() -> None:
    """Configure the root logger once."""
    global _initialized
    if _initialized:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SecretRedactingFormatter(_LOG_FORMAT, _DATE_FORMAT, (TELEGRAM_BOT_TOKEN,)))
    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root.addHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, configuring logging on first use."""
    _init_logging()
    return logging.getLogger(name)
