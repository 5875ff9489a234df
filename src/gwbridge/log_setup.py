"""Logging for gwbridge commands and the HTTP API.

``init()`` replaces whatever handlers the root logger has.  Output goes to
``<log_dir>/<component>.log`` (rotating) when a directory is given and to
stderr when ``foreground`` is set; ``gwbridge serve --no-log-file`` uses
stderr alone.

Every line passes through :class:`CredentialFilter`, so bearer tokens
that end up in a message (a handshake frame, an exception text, a URL
query) are written as ``***``.

    2026-03-02T10:00:00.123Z WARNING gwbridge.whatsapp_guard | WhatsApp owner-only patch failed (account=default): stale hash
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"
LOG_FILE_MAX_BYTES = 2 * 1024 * 1024
LOG_FILE_BACKUPS = 3
_OWNED = "_gwbridge_handler"

# Chatty third-party loggers; explicit log_levels win over these.
DEFAULT_LEVELS: dict[str, str] = {
    "websockets": "WARNING",
    "uvicorn.access": "WARNING",
    "httpx": "WARNING",
}

_REDACTIONS = (
    re.compile(r'("token"\s*:\s*")[^"]*(")'),
    re.compile(r"(\btoken=)[^&\s]+()"),
    re.compile(r"(\bBearer\s+)\S+()", re.IGNORECASE),
)


def redact(text: str) -> str:
    for pattern in _REDACTIONS:
        text = pattern.sub(r"\1***\2", text)
    return text


class CredentialFilter(logging.Filter):
    """Mask gateway tokens before a record reaches any handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None
        return True


class UtcFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z"


def _level(name: str) -> int | None:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else None


def init(
    component: str,
    log_dir: Path | None = None,
    *,
    level: str = "INFO",
    foreground: bool = False,
    log_levels: dict[str, str] | None = None,
) -> list[logging.Handler]:
    """Configure the root logger and return the handlers installed.

    With neither *log_dir* nor *foreground* records go to stderr.
    Unknown level names are ignored.
    """
    formatter = UtcFormatter(LOG_FORMAT)
    credentials = CredentialFilter()
    handlers: list[logging.Handler] = []

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_dir / f"{component}.log",
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )
    if foreground or not handlers:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(credentials)
        setattr(handler, _OWNED, True)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        if getattr(old, _OWNED, False):
            old.close()
    root.setLevel(_level(level) or logging.INFO)
    for handler in handlers:
        root.addHandler(handler)

    for name, level_name in {**DEFAULT_LEVELS, **(log_levels or {})}.items():
        override = _level(level_name)
        if override is not None:
            logging.getLogger(name).setLevel(override)
    return handlers
