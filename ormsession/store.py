"""
Database-backed session store.

The cookie only carries the encoded session id; the session values live in
the ``data`` column of the sessions table. Expiry is enforced three times:
by the ``expired_at > now`` lookup, by the Fernet timestamp inside the cookie
and stored payload, and by the background GC that removes stale rows.

Reading never fails: a missing, tampered, stale or unknown cookie and a
database outage during lookup all produce a fresh empty session. Writing
does fail loudly, because a session that was not persisted must not look
like it was.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy.orm import sessionmaker
from starlette.requests import HTTPConnection
from starlette.responses import Response

from ormsession.core.codec import (
    Codec,
    EncodingMode,
    KeyPair,
    PlainCodec,
    SecureCodec,
    codecs_from_pairs,
    decode_multi,
    encode_multi,
    pairs_from_keys,
)
from ormsession.core.security import generate_session_id, mask_session_id, validate_key
from ormsession.db.models.session_store import session_model
from ormsession.db.repository import SessionRepository
from ormsession.db.session import create_session_factory
from ormsession.exceptions import CodecError, ConfigurationError, EncodeError, SessionPersistenceError
from ormsession.gc import DEFAULT_GC_INTERVAL, SessionGarbageCollector
from ormsession.sessions import DEFAULT_MAX_AGE, CookieOptions, Session, get_registry, set_session_cookie

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC now, the format stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SessionStore:
    """
    Session store persisting values in a relational table.

    Args:
        session_factory: SQLAlchemy sessionmaker bound to an engine
        table_name: Name of the sessions table
        gc_interval: Seconds between expired-row sweeps
        gc_enabled: Set to False when cleanup runs elsewhere (cron, tests)
        create_table: Set to False when the schema is managed externally
        encoding: EncodingMode.SECURE, or EncodingMode.PLAIN for development only
        key_pairs: Rotation list, newest first. Required in secure mode
        options: Default cookie options copied into every new session
        now_func: Clock returning naive UTC datetimes
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        table_name: str = "sessions",
        gc_interval: float = DEFAULT_GC_INTERVAL,
        gc_enabled: bool = True,
        create_table: bool = True,
        encoding: EncodingMode = EncodingMode.SECURE,
        key_pairs: Sequence[KeyPair] = (),
        options: Optional[CookieOptions] = None,
        now_func: Callable[[], datetime] = utcnow,
    ):
        self.options = options.copy() if options is not None else CookieOptions()
        self.encoding = EncodingMode(encoding)
        self._now_func = now_func

        if self.encoding is EncodingMode.SECURE and not key_pairs:
            raise ConfigurationError("Secure encoding requires at least one key pair")

        if key_pairs:
            self.codecs: list[Codec] = list(codecs_from_pairs(*key_pairs, max_age=self.options.max_age))
        else:
            self.codecs = [PlainCodec()]

        if self.encoding is EncodingMode.PLAIN:
            logger.warning(
                "Session store running with PLAIN encoding: session data is stored as "
                "unauthenticated JSON. Never use this in production."
            )

        self.repository = SessionRepository(session_factory, session_model(table_name))
        if create_table:
            self.repository.ensure_schema()

        self.gc: Optional[SessionGarbageCollector] = None
        if gc_enabled:
            try:
                self.gc = SessionGarbageCollector(self.repository, now_func, interval=gc_interval)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            self.gc.start()

        self.max_age(self.options.max_age)

    @classmethod
    def from_settings(cls, settings, session_factory: Optional[sessionmaker] = None) -> "SessionStore":
        """Build a store from SessionSettings."""
        if settings.secure:
            for key in settings.key_pairs:
                try:
                    validate_key(key)
                except ValueError as e:
                    raise ConfigurationError(str(e)) from e

        if session_factory is None:
            session_factory = create_session_factory(settings.database_url)

        options = CookieOptions(
            path=settings.path,
            domain=settings.domain,
            max_age=settings.max_age,
            secure=settings.cookie_secure,
            http_only=settings.http_only,
            same_site=settings.same_site,
        )
        return cls(
            session_factory,
            table_name=settings.table_name,
            gc_interval=settings.gc_interval,
            gc_enabled=settings.gc_enabled,
            create_table=settings.create_table,
            encoding=EncodingMode.SECURE if settings.secure else EncodingMode.PLAIN,
            key_pairs=pairs_from_keys(*settings.key_pairs),
            options=options,
        )

    def close(self) -> None:
        """Stop the background GC. In-flight requests and sweeps are not interrupted."""
        if self.gc is not None:
            self.gc.stop()

    def __enter__(self) -> "SessionStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def get(self, request: HTTPConnection, name: str) -> Session:
        """Return the session ``name`` for this request, loading it at most once."""
        return get_registry(request).get(self, name)

    def new(self, request: HTTPConnection, name: str) -> Session:
        """
        Load the session named ``name`` from the request cookie.

        Always returns a usable session; it is empty and ``is_new`` when
        nothing valid could be loaded.
        """
        session = Session(name=name, store=self, options=self.options.copy())

        cookie = request.cookies.get(name)
        if not cookie:
            return session

        loaded = self._load(name, cookie)
        if loaded is None:
            return session

        session.id, values = loaded
        session.values.update(values)
        session.is_new = False
        return session

    def _load(self, name: str, cookie: str) -> Optional[tuple[str, Dict[str, Any]]]:
        """Resolve a cookie value to ``(id, values)``; any failure means absent."""
        try:
            session_id = decode_multi(name, cookie, self.codecs)
        except CodecError as e:
            logger.debug(f"Ignoring undecodable {name!r} cookie: {e}")
            return None
        if not isinstance(session_id, str) or not session_id:
            return None

        try:
            record = self.repository.find_active(session_id, self._now_func())
        except SessionPersistenceError as e:
            logger.warning(f"Session lookup failed, starting a fresh session: {e.__cause__ or e}")
            return None
        if record is None:
            logger.debug("No active session %s", mask_session_id(session_id))
            return None

        try:
            values = self._decode_values(name, record.data)
        except CodecError as e:
            logger.debug(f"Ignoring undecodable data for session {mask_session_id(session_id)}: {e}")
            return None
        return session_id, values

    def _decode_values(self, name: str, data: str) -> Dict[str, Any]:
        if self.encoding is EncodingMode.SECURE:
            values = decode_multi(name, data, self.codecs)
        else:
            try:
                values = json.loads(data)
            except ValueError as e:
                raise CodecError("Stored session data is not valid JSON") from e
        if not isinstance(values, dict):
            raise CodecError("Stored session data is not a mapping")
        return values

    def _encode_values(self, name: str, values: Dict[Any, Any]) -> str:
        if self.encoding is EncodingMode.SECURE:
            return encode_multi(name, values, self.codecs)
        try:
            return json.dumps({str(k): v for k, v in values.items()})
        except (TypeError, ValueError) as e:
            raise EncodeError(f"Session {name!r} values are not JSON serializable: {e}") from e

    def save(self, request: HTTPConnection, response: Response, session: Session) -> None:
        """
        Persist ``session`` and set its cookie on ``response``.

        A negative ``max_age`` deletes the row and expires the cookie.

        Raises:
            SessionPersistenceError: If the row could not be written or deleted
            EncodeError: If the values or the id cannot be encoded
        """
        if session.options.max_age < 0:
            if session.id:
                self.repository.delete_by_id(session.id)
                logger.debug("Deleted session %s", mask_session_id(session.id))
            set_session_cookie(response, session.name, "", session.options)
            return

        data = self._encode_values(session.name, session.values)
        now = self._now_func()
        expired_at = now + timedelta(seconds=self._row_lifetime(session.options.max_age))

        model = self.repository.model
        if not session.id:
            session_id = generate_session_id()
            self.repository.create(
                model(id=session_id, data=data, created_at=now, expired_at=expired_at)
            )
            session.id = session_id
            logger.debug("Created session %s", mask_session_id(session_id))
        else:
            self.repository.upsert_by_id(
                model(id=session.id, data=data, created_at=now, expired_at=expired_at)
            )

        cookie_value = encode_multi(session.name, session.id, self.codecs)
        set_session_cookie(response, session.name, cookie_value, session.options)

    def _row_lifetime(self, max_age: int) -> int:
        """
        Seconds a row stays loadable.

        A browser-session cookie (``max_age == 0``) has no lifetime of its own,
        so its row gets the store default window.
        """
        if max_age > 0:
            return max_age
        return self.options.max_age if self.options.max_age > 0 else DEFAULT_MAX_AGE

    def max_age(self, age: int) -> None:
        """
        Set the default max age for new sessions and for cookie validation.

        Individual sessions can be deleted by setting ``options.max_age = -1``.
        """
        self.options.max_age = age
        for codec in self.secure_codecs:
            codec.max_age(age)

    def sweep(self) -> int:
        """Remove expired rows now. Useful when the background GC is disabled."""
        if self.gc is not None:
            return self.gc.sweep()
        return SessionGarbageCollector(self.repository, self._now_func).sweep()

    @property
    def secure_codecs(self) -> list[SecureCodec]:
        return [codec for codec in self.codecs if isinstance(codec, SecureCodec)]
