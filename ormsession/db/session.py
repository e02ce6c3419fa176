from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Request handlers and the GC thread share one SQLite connection pool
        return {"check_same_thread": False}
    return {}


def create_db_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create database engine with appropriate connection args"""
    return create_engine(database_url, connect_args=get_connect_args(database_url), **kwargs)


def create_session_factory(database_url: str, **kwargs: Any) -> sessionmaker:
    """Create an engine and a session factory bound to it"""
    engine = create_db_engine(database_url, **kwargs)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a DB session with proper resource management"""
    db = factory()
    try:
        yield db
    finally:
        db.close()
