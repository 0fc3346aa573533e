"""Tests for log formatting."""

import logging
import sys

from utils.logger import SecretRedactingFormatter

TOKEN = "123456:ABC-secret"


def make_record(msg: str, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord("relay", logging.ERROR, __file__, 1, msg, None, exc_info)


def test_masks_token_in_message() -> None:
    formatter = SecretRedactingFormatter("%(message)s", "", (TOKEN,))

    line = formatter.format(make_record(f"POST https://api.telegram.org/bot{TOKEN}/sendMessage"))

    assert TOKEN not in line
    assert "bot<bot-token>/sendMessage" in line


def test_masks_token_in_traceback() -> None:
    formatter = SecretRedactingFormatter("%(message)s", "", (TOKEN,))
    try:
        raise RuntimeError(f"request to bot{TOKEN} failed")
    except RuntimeError:
        record = make_record("boom", sys.exc_info())

    line = formatter.format(record)

    assert "Traceback" in line
    assert TOKEN not in line


def test_empty_secret_is_ignored() -> None:
    formatter = SecretRedactingFormatter("%(message)s", "", ("",))

    assert formatter.format(make_record("plain")) == "plain"
