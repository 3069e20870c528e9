"""Structured logging with PII redaction hooks.

ENV=prod gets one JSON object per line; every other env gets plaintext.
Both formatters run the final line through observability.redaction, and the
JSON form lifts merchant=/token= pairs into their own keys so tenant activity
can be correlated without logging any protected value.
"""
import json
import logging
import re
import sys
from typing import Optional

from config.settings import get_settings
from observability.redaction import redact

_MERCHANT_RE = re.compile(r"merchant=(\S+)")
_TOKEN_RE = re.compile(r"token=(\S+)")

PLAINTEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Chatty drivers; their DEBUG output can echo query documents
_QUIET_LOGGERS = ("motor", "pymongo", "asyncio")


class RedactingFormatter(logging.Formatter):
    """Plaintext formatter that scrubs PII and secrets from the final line."""

    def __init__(self, fmt: Optional[str] = PLAINTEXT_FORMAT, datefmt: Optional[str] = DATE_FORMAT,
                 redaction_enabled: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.redaction_enabled = redaction_enabled

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        return redact(line) if self.redaction_enabled else line


class JSONFormatter(logging.Formatter):

    def __init__(self, redaction_enabled: bool = True):
        super().__init__(datefmt=DATE_FORMAT)
        self.redaction_enabled = redaction_enabled

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": msg,
        }
        for key, pattern in (("merchant_id", _MERCHANT_RE), ("token_id", _TOKEN_RE)):
            found = pattern.search(msg)
            if found:
                entry[key] = found.group(1)
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        line = json.dumps(entry, default=str)
        return redact(line) if self.redaction_enabled else line


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    settings = get_settings()
    if settings.ENV == "prod":
        formatter: logging.Formatter = JSONFormatter(settings.LOG_REDACTION_ENABLED)
    else:
        formatter = RedactingFormatter(redaction_enabled=settings.LOG_REDACTION_ENABLED)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
