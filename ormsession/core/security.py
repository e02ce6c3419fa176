"""
Security helpers for session identifiers.

Session IDs are bearer secrets once paired with a valid cookie, so they are
generated from the OS CSPRNG and never written to logs in full.
"""

import base64
import logging
import secrets
from typing import Optional

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 32


def generate_session_id(num_bytes: int = SESSION_ID_BYTES) -> str:
    """
    Generate a random session identifier.

    Args:
        num_bytes: Amount of randomness (default: 32 bytes)

    Returns:
        Base32 text without ``=`` padding, safe in URLs and cookies
    """
    return base64.b32encode(secrets.token_bytes(num_bytes)).decode("ascii").rstrip("=")


def mask_session_id(session_id: Optional[str]) -> str:
    """Keep only a short prefix of a session ID for log messages."""
    if not session_id:
        return "<none>"
    if len(session_id) > 8:
        return session_id[:6] + "****"
    return "****"


def generate_key(length: int = 64) -> str:
    """Generate a random key suitable for the ``key_pairs`` setting."""
    return secrets.token_urlsafe(length)


def validate_key(key: str) -> None:
    """
    Validate that a configured key meets minimum requirements.

    Raises:
        ValueError: If the key is too short or obviously weak
    """
    if not key:
        raise ValueError("Session key cannot be empty")

    if len(key) < 32:
        raise ValueError("Session key must be at least 32 characters long")

    unique_chars = len(set(key.lower()))
    if unique_chars < 8:
        raise ValueError("Session key has insufficient entropy (too repetitive)")

    logger.debug("Session key validation passed")
