"""Database models"""

from ormsession.db.models.session_store import SessionRecord, SessionRecordMixin, session_model

__all__ = [
    "SessionRecord",
    "SessionRecordMixin",
    "session_model",
]
