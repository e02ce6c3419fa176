"""Server-side session rows on SQLAlchemy.

One row per session: ``id`` is the random session identifier carried (encoded)
in the cookie, ``data`` the encoded session values, ``expired_at`` the moment the
row stops being served. Every method opens its own DB session so the repository
can be shared by request handlers and the garbage collector without locking;
row-level atomicity is left to the database.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Type
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ormsession.core.security import mask_session_id
from ormsession.db.models.session_store import SessionRecordMixin
from ormsession.db.session import session_scope
from ormsession.exceptions import ConfigurationError, SessionConflictError, SessionPersistenceError

logger = logging.getLogger(__name__)


class SessionRepository:
    def __init__(self, session_factory: sessionmaker, model: Type[SessionRecordMixin]):
        self._session_factory = session_factory
        self.model = model

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def ensure_schema(self) -> None:
        """Create the sessions table if it does not exist yet."""
        engine = self._session_factory.kw.get("bind")
        if engine is None:
            raise ConfigurationError(
                "Session factory is not bound to an engine; pass sessionmaker(bind=engine)"
            )
        try:
            self.model.metadata.create_all(
                bind=engine,
                tables=[self.model.__table__],
                checkfirst=True,  # Explicit to avoid redundant DDL
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize session table {self.table_name}: {e}")
            raise SessionPersistenceError(f"Could not create table {self.table_name}") from e
        logger.debug("Session table %s initialized", self.table_name)

    def find_active(self, session_id: str, now: datetime) -> Optional[SessionRecordMixin]:
        """Return the row for ``session_id`` unless it is missing or expired."""
        model = self.model
        try:
            with session_scope(self._session_factory) as db:
                return db.scalar(
                    select(model).where(model.id == session_id, model.expired_at > now)
                )
        except SQLAlchemyError as e:
            raise SessionPersistenceError(f"Lookup failed in {self.table_name}") from e

    def create(self, record: SessionRecordMixin) -> None:
        """
        Insert a new row.

        Raises:
            SessionConflictError: If a row with the same id already exists
            SessionPersistenceError: For any other database failure
        """
        with session_scope(self._session_factory) as db:
            try:
                db.add(record)
                db.commit()
            except IntegrityError as e:
                db.rollback()
                logger.warning("Session id collision for %s", mask_session_id(record.id))
                raise SessionConflictError("Session id already exists") from e
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database insert failed in {self.table_name}: {e}")
                raise SessionPersistenceError(f"Insert failed in {self.table_name}") from e

    def upsert_by_id(self, record: SessionRecordMixin) -> None:
        """
        Replace ``data`` and ``expired_at`` of an existing row.

        If the row disappeared in the meantime (swept or deleted by a concurrent
        logout) it is inserted again.
        """
        model = self.model
        with session_scope(self._session_factory) as db:
            try:
                result = db.execute(
                    update(model)
                    .where(model.id == record.id)
                    .values(data=record.data, expired_at=record.expired_at)
                )

                if result.rowcount == 0:
                    db.add(record)
                    logger.debug("Re-inserting vanished session %s", mask_session_id(record.id))

                db.commit()

            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database update failed in {self.table_name}: {e}")
                raise SessionPersistenceError(f"Update failed in {self.table_name}") from e

    def delete_by_id(self, session_id: str) -> None:
        model = self.model
        with session_scope(self._session_factory) as db:
            try:
                db.execute(delete(model).where(model.id == session_id))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database delete failed in {self.table_name}: {e}")
                raise SessionPersistenceError(f"Delete failed in {self.table_name}") from e

    def count_expired(self, now: datetime) -> int:
        model = self.model
        try:
            with session_scope(self._session_factory) as db:
                return db.scalar(
                    select(func.count()).select_from(model).where(model.expired_at <= now)
                ) or 0
        except SQLAlchemyError as e:
            raise SessionPersistenceError(f"Count failed in {self.table_name}") from e

    def delete_expired(self, now: datetime) -> int:
        """Delete every row whose expiry has passed and return how many went."""
        model = self.model
        with session_scope(self._session_factory) as db:
            try:
                result = db.execute(delete(model).where(model.expired_at <= now))
                db.commit()
                return result.rowcount
            except SQLAlchemyError as e:
                db.rollback()
                raise SessionPersistenceError(f"Expired row cleanup failed in {self.table_name}") from e
