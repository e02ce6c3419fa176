"""
Unit tests for structured logging and session id helpers
"""

import json
import logging
import re
import sys

import pytest

from ormsession.core.codec import SecureCodec
from ormsession.core.config import SessionSettings
from ormsession.core.logging_config import RedactingFormatter, StructuredFormatter, init_logging, redact, setup_logging
from ormsession.core.security import generate_key, generate_session_id, mask_session_id, validate_key

pytestmark = pytest.mark.unit


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg="hello", **extra):
    record = logging.LogRecord("ormsession.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_outputs_json(self):
        entry = json.loads(StructuredFormatter().format(make_record("Session GC removed 3")))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "ormsession.test"
        assert entry["message"] == "Session GC removed 3"
        assert entry["timestamp"].endswith("Z")

    def test_sensitive_extras_redacted(self):
        record = make_record(session_id="ABCDEFGH", cookie="token", table="sessions")
        entry = json.loads(StructuredFormatter().format(record))

        assert entry["extra"]["session_id"] == "[REDACTED]"
        assert entry["extra"]["cookie"] == "[REDACTED]"
        assert entry["extra"]["table"] == "sessions"

    def test_sensitive_extras_kept_when_allowed(self):
        record = make_record(session_id="ABCDEFGH")
        entry = json.loads(StructuredFormatter(include_sensitive=True).format(record))
        assert entry["extra"]["session_id"] == "ABCDEFGH"

    def test_exception_included(self):
        try:
            raise RuntimeError("database is locked")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(StructuredFormatter().format(record))
        assert "database is locked" in entry["exception"]

    def test_session_id_in_message_redacted(self):
        session_id = generate_session_id()
        entry = json.loads(StructuredFormatter().format(make_record(f"lookup failed for {session_id}")))

        assert session_id not in entry["message"]
        assert entry["message"] == "lookup failed for [REDACTED]"

    def test_cookie_token_in_exception_redacted(self, key_pair):
        token = SecureCodec(key_pair).encode("session", "some-id")
        try:
            raise ValueError(f"bad cookie {token}")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(StructuredFormatter().format(record))
        assert token not in entry["exception"]
        assert "bad cookie [REDACTED]" in entry["exception"]

    def test_message_kept_when_sensitive_allowed(self):
        session_id = generate_session_id()
        entry = json.loads(StructuredFormatter(include_sensitive=True).format(make_record(session_id)))
        assert entry["message"] == session_id


class TestSetupLogging:
    def test_setup_installs_single_handler(self, restore_root_logger):
        setup_logging(log_level="DEBUG", enable_json=True)

        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_plain_text_and_file(self, restore_root_logger, temp_directory):
        log_file = temp_directory / "sessions.log"
        setup_logging(log_level="INFO", enable_json=False, log_file=str(log_file))

        logging.getLogger("ormsession.test").info("plain message")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert "plain message" in log_file.read_text()
        assert not isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_plain_text_redacts_session_ids(self):
        session_id = generate_session_id()
        formatter = RedactingFormatter("%(message)s")
        assert formatter.format(make_record(f"session {session_id} saved")) == "session [REDACTED] saved"

    def test_init_logging_from_settings(self, restore_root_logger):
        init_logging(SessionSettings(log_level="WARNING", log_json=False))
        assert restore_root_logger.level == logging.WARNING


class TestSessionIds:
    def test_generated_ids_are_url_safe_and_unpadded(self):
        session_id = generate_session_id()
        assert re.fullmatch(r"[A-Z2-7]{52}", session_id)

    def test_generated_ids_are_unique(self):
        assert len({generate_session_id() for _ in range(1000)}) == 1000

    def test_mask_session_id(self):
        assert mask_session_id("ABCDEFGHIJKLMNOP") == "ABCDEF****"
        assert mask_session_id("SHORT") == "****"
        assert mask_session_id("") == "<none>"
        assert mask_session_id(None) == "<none>"


class TestKeys:
    def test_generated_key_passes_validation(self):
        validate_key(generate_key())

    @pytest.mark.parametrize("key", ["", "short", "a" * 40, "abababababababababababababababab"])
    def test_weak_keys_rejected(self, key):
        with pytest.raises(ValueError):
            validate_key(key)


class TestRedact:
    def test_short_or_lowercase_values_untouched(self):
        assert redact("table sessions removed 3 rows") == "table sessions removed 3 rows"
        assert redact("ABCDEF****") == "ABCDEF****"

    def test_padded_fernet_token_redacted(self, key_pair):
        token = SecureCodec(key_pair).encode("session", {"a": 1})
        assert redact(f"token={token}==") == "token=[REDACTED]"
