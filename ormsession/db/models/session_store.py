from datetime import datetime
from functools import lru_cache
from typing import Type

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ormsession.db.base import Base

ID_LENGTH = 255
DATA_LENGTH = 4096


class SessionRecordMixin:
    """Columns shared by every sessions table."""

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    data: Mapped[str] = mapped_column(String(DATA_LENGTH), nullable=False, default="")
    expired_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<{type(self).__name__}(expired_at={self.expired_at!r})>"


@lru_cache(maxsize=None)
def session_model(table_name: str = "sessions") -> Type[SessionRecordMixin]:
    """Return the mapped session record class for ``table_name``.

    Cached so each table name is mapped exactly once on the shared metadata.
    """
    class_name = "SessionRecord_" + "".join(ch if ch.isalnum() else "_" for ch in table_name)
    return type(class_name, (SessionRecordMixin, Base), {"__tablename__": table_name})


SessionRecord = session_model("sessions")
