"""Logging setup for the relay.

Production emits one JSON object per line; every other env gets a readable
single-line format. Both pass through observability.redaction before
leaving the process, so tokens and keys never reach stdout.

JSON records also carry:
  - session_id / channel_id, lifted from `session=` / `channel=` pairs
  - details, when the record came from the event sink
"""
import json
import logging
import re
import sys
from typing import Optional

from config.settings import get_settings
from observability.redaction import redact

PLAINTEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
PLAINTEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_CORRELATION = {
    "session_id": re.compile(r"\bsession=(\S+)"),
    "channel_id": re.compile(r"\bchannel=(\S+)"),
}

# Third-party loggers that flood INFO with per-request lines
_NOISY_LOGGERS = ("uvicorn.access", "motor", "pymongo", "httpx", "httpcore")


def _scrub(text: str) -> str:
    return redact(text) if get_settings().LOG_REDACTION_ENABLED else text


class RedactingFormatter(logging.Formatter):
    """Plaintext formatter; redacts the fully rendered line."""

    def format(self, record: logging.LogRecord) -> str:
        return _scrub(super().format(record))


class JSONFormatter(logging.Formatter):
    """One JSON object per record, redacted after serialization."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        entry = {
            "ts": self.formatTime(record, PLAINTEXT_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "msg": message,
        }
        for field, pattern in _CORRELATION.items():
            found = pattern.search(message)
            if found:
                entry[field] = found.group(1)

        details = getattr(record, "details", None)
        if isinstance(details, dict):
            entry["details"] = details
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return _scrub(json.dumps(entry, default=str))


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Install a single stdout handler on the root logger.

    `json_output` defaults to ENV == "prod".
    """
    settings = get_settings()
    if json_output is None:
        json_output = settings.ENV == "prod"

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(RedactingFormatter(fmt=PLAINTEXT_FORMAT, datefmt=PLAINTEXT_DATEFMT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
