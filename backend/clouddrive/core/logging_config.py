"""Logging setup for the CloudDrive API.

One stdout handler on the root logger. Every record passes through two
filters before formatting: the first stamps it with the current request
id, the second scrubs storage credentials. ``LOG_FORMAT=json`` (the
default) writes one JSON object per line; ``text`` is meant for a
developer terminal.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Set by RequestContextMiddleware for the duration of a request.
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"

# Loggers that are chatty at INFO and add nothing to an operation log.
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "botocore", "boto3", "urllib3")

_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"request_id"}

_MASK = "***REDACTED***"

# Group 1, when present, is kept in front of the mask.
_CREDENTIAL_PATTERNS = (
    re.compile(r'(/bot)\d+:[A-Za-z0-9_\-]{20,}'),
    re.compile(r'\b(AKIA[0-9A-Z]{16})\b'),
    re.compile(r'(?i)(bearer\s+)[a-zA-Z0-9._\-]{20,}'),
    re.compile(r'(://[^:/\s]+:)[^@\s]+(?=@)'),
    re.compile(
        r'(?i)((?:secret_access_key|secretAccessKey|password|botToken|token|authorization)["\']?[=:]\s*["\']?)[^\s,\'"]{6,}'
    ),
)


def scrub(text: str) -> str:
    """Mask bot tokens, AWS keys, bearer tokens and URL passwords in *text*."""
    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub(lambda m: (m.group(1) if m.lastindex else "") + _MASK, text)
    return text


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class _CredentialFilter(logging.Filter):
    """Scrub the message template, its string arguments and cached traceback text.

    S3 and WebDAV errors can echo endpoint URLs with credentials, and every
    Telegram URL carries the bot token.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = scrub(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(scrub(a) if isinstance(a, str) else a for a in record.args)
        if record.exc_text:
            record.exc_text = scrub(record.exc_text)
        return True


class _JsonLineFormatter(logging.Formatter):
    """One JSON object per record; ``extra={...}`` keys become top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.request_id != "-":
            entry["request_id"] = record.request_id
        entry.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exc_info"] = scrub(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install the stdout handler on the root logger, replacing any previous one.

    Args:
        log_level: Root level name; ``INFO`` when omitted.
        log_format: ``"json"`` (default) or ``"text"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_RequestIdFilter())
    handler.addFilter(_CredentialFilter())
    if fmt == "json":
        handler.setFormatter(_JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": fmt})
