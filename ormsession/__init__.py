"""SQLAlchemy-backed server-side HTTP sessions with Fernet-encoded cookies."""

from ormsession.core.codec import EncodingMode, KeyPair, pairs_from_keys
from ormsession.exceptions import (
    CodecError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    SessionConflictError,
    SessionPersistenceError,
    SessionStoreError,
)
from ormsession.sessions import CookieOptions, Session, SessionRegistry, get_registry, save_sessions
from ormsession.store import SessionStore

__version__ = "1.0.0"

__all__ = [
    "CodecError",
    "ConfigurationError",
    "CookieOptions",
    "DecodeError",
    "EncodeError",
    "EncodingMode",
    "KeyPair",
    "Session",
    "SessionConflictError",
    "SessionPersistenceError",
    "SessionRegistry",
    "SessionStore",
    "SessionStoreError",
    "get_registry",
    "pairs_from_keys",
    "save_sessions",
]
