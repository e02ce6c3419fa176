"""
Encoding utilities for session cookies and stored session payloads.

Values are serialized to JSON and sealed with Fernet (AES-128-CBC plus
HMAC-SHA256 with an embedded timestamp). Several key pairs can be active at
once: the first pair encodes, every pair is tried in order when decoding, so
keys can be rotated without logging users out.
"""

import base64
import binascii
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Sequence, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ormsession.exceptions import DecodeError, EncodeError

logger = logging.getLogger(__name__)

# Matches the size of the ``data`` column and the common cookie size limit
DEFAULT_MAX_LENGTH = 4096

KeyMaterial = Union[str, bytes]


class EncodingMode(str, Enum):
    """How session values are written to the ``data`` column."""

    SECURE = "secure"
    # Plain JSON with no tamper protection and no confidentiality. Development only.
    PLAIN = "plain"


class KeyPair(NamedTuple):
    """One rotation entry: a signing key and an optional encryption key."""

    hash_key: KeyMaterial
    block_key: Optional[KeyMaterial] = None


def pairs_from_keys(*keys: Optional[KeyMaterial]) -> list[KeyPair]:
    """Group a flat ``[hash, block, hash, block, ...]`` list into key pairs."""
    pairs = []
    for i in range(0, len(keys), 2):
        hash_key = keys[i]
        block_key = keys[i + 1] if i + 1 < len(keys) else None
        if not hash_key:
            raise ValueError(f"Empty hash key at position {i}")
        pairs.append(KeyPair(hash_key, block_key or None))
    return pairs


def _to_bytes(value: KeyMaterial) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _derive(secret: bytes, info: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=16, salt=None, info=info)
    return hkdf.derive(secret)


def _strip_padding(token: str) -> str:
    return token.rstrip("=")


def _restore_padding(token: str) -> str:
    return token + "=" * (-len(token) % 4)


def _dump(name: str, value: Any) -> bytes:
    try:
        return json.dumps({"name": name, "value": value}, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Value for {name!r} is not JSON serializable: {e}") from e


def _load(name: str, raw: bytes) -> Any:
    try:
        envelope = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError("Malformed payload") from e

    if not isinstance(envelope, dict) or "value" not in envelope:
        raise DecodeError("Malformed payload")
    if envelope.get("name") != name:
        raise DecodeError("Payload was encoded for a different name")
    return envelope["value"]


class SecureCodec:
    """Authenticated encryption of JSON values with a single key pair."""

    def __init__(
        self,
        pair: KeyPair,
        max_age: int = 86400 * 30,
        max_length: int = DEFAULT_MAX_LENGTH,
        time_func: Callable[[], float] = time.time,
    ):
        hash_key = _to_bytes(pair.hash_key)
        block_key = _to_bytes(pair.block_key) if pair.block_key else hash_key
        key = _derive(hash_key, b"ormsession-signing") + _derive(block_key, b"ormsession-encryption")
        self._fernet = Fernet(base64.urlsafe_b64encode(key))
        self._max_age = max_age
        self._max_length = max_length
        self._time_func = time_func

    def max_age(self, age: int) -> None:
        """Reject tokens older than ``age`` seconds. Zero or less disables the check."""
        self._max_age = age

    def encode(self, name: str, value: Any) -> str:
        token = self._fernet.encrypt_at_time(_dump(name, value), int(self._time_func()))
        encoded = _strip_padding(token.decode("ascii"))
        if self._max_length and len(encoded) > self._max_length:
            raise EncodeError(f"Encoded value for {name!r} is too long ({len(encoded)} bytes)")
        return encoded

    def decode(self, name: str, token: str) -> Any:
        if not token:
            raise DecodeError("Empty token")
        if self._max_length and len(token) > self._max_length:
            raise DecodeError("Token is too long")
        try:
            raw_token = _restore_padding(token).encode("ascii")
            if self._max_age > 0:
                raw = self._fernet.decrypt_at_time(raw_token, self._max_age, int(self._time_func()))
            else:
                raw = self._fernet.decrypt(raw_token)
        except (InvalidToken, UnicodeEncodeError) as e:
            raise DecodeError("Invalid or expired token") from e
        return _load(name, raw)


class PlainCodec:
    """
    Unauthenticated URL-safe base64 JSON encoding.

    WARNING: anyone can read and forge these tokens. Only for development setups
    that run without key pairs.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self._max_length = max_length

    def encode(self, name: str, value: Any) -> str:
        encoded = _strip_padding(base64.urlsafe_b64encode(_dump(name, value)).decode("ascii"))
        if self._max_length and len(encoded) > self._max_length:
            raise EncodeError(f"Encoded value for {name!r} is too long ({len(encoded)} bytes)")
        return encoded

    def decode(self, name: str, token: str) -> Any:
        if not token:
            raise DecodeError("Empty token")
        try:
            raw = base64.urlsafe_b64decode(_restore_padding(token).encode("ascii"))
        except (binascii.Error, ValueError) as e:
            raise DecodeError("Malformed token") from e
        return _load(name, raw)


Codec = Union[SecureCodec, PlainCodec]


def codecs_from_pairs(*pairs: KeyPair, max_age: int = 86400 * 30) -> list[SecureCodec]:
    """Build one SecureCodec per key pair, newest first."""
    return [SecureCodec(pair, max_age=max_age) for pair in pairs]


def encode_multi(name: str, value: Any, codecs: Sequence[Codec]) -> str:
    """Encode with the first (active) codec."""
    if not codecs:
        raise EncodeError("No codecs configured")
    return codecs[0].encode(name, value)


def decode_multi(name: str, token: str, codecs: Sequence[Codec]) -> Any:
    """Try each codec in order and return the first successful decode."""
    if not codecs:
        raise DecodeError("No codecs configured")

    last_error: Optional[DecodeError] = None
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except DecodeError as e:
            last_error = e
    raise DecodeError(f"Token could not be decoded with any of {len(codecs)} key(s)") from last_error
