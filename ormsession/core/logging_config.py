"""
Logging setup for the session store.

Session ids and cookie tokens must never reach a log sink in full. The store
already masks ids it logs itself, but exception messages from SQLAlchemy or
application code can still carry them, so both formatters scrub the rendered
message as well as any sensitive ``extra`` fields.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Optional

REDACTED = "[REDACTED]"

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_SENSITIVE_NAMES = ("password", "secret", "key", "token", "credential", "session_id", "cookie", "data", "values")

_SENSITIVE_PATTERNS = (
    # Fernet tokens, padded or not
    re.compile(r"gAAAAA[A-Za-z0-9_\-]{20,}=*"),
    # Full session ids (unpadded base32 of 32 bytes)
    re.compile(r"\b[A-Z2-7]{52}\b"),
)


def redact(text: str) -> str:
    """Replace session ids and cookie tokens found in ``text``."""
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def is_sensitive_name(name: str) -> bool:
    name = name.lower()
    return any(word in name for word in _SENSITIVE_NAMES)


class RedactingFormatter(logging.Formatter):
    """Plain-text formatter that scrubs ids and tokens from the output."""

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; sensitive extras and message content are redacted."""

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        scrub = (lambda text: text) if self.include_sensitive else redact

        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": scrub(record.getMessage()),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = scrub(self.formatException(record.exc_info))

        extra = {
            name: REDACTED if not self.include_sensitive and is_sensitive_name(name) else value
            for name, value in vars(record).items()
            if name not in _RESERVED_ATTRS
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False,
) -> None:
    """Replace the root logger's handlers with a stdout handler and an optional file handler."""
    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = RedactingFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level.upper())
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # SQL echo is far too chatty at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def init_logging(settings) -> None:
    """Initialize logging from SessionSettings"""
    setup_logging(log_level=settings.log_level, enable_json=settings.log_json)
    logging.getLogger("ormsession.startup").info(
        "Logging initialized",
        extra={"json_logging": settings.log_json, "log_level": settings.log_level},
    )
