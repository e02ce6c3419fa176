"""Create the sessions table for deployments that run with create_table=False"""

import logging
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from ormsession.core.config import SessionSettings
from ormsession.core.logging_config import init_logging
from ormsession.db.models.session_store import session_model
from ormsession.db.session import create_db_engine

logger = logging.getLogger("ormsession.database")


def init_database(engine: Engine, table_name: str = "sessions") -> bool:
    """
    Create the sessions table if it is missing.

    Returns:
        True if the table was created, False if it already existed
    """
    model = session_model(table_name)
    try:
        existed = inspect(engine).has_table(table_name)
        model.metadata.create_all(bind=engine, tables=[model.__table__], checkfirst=True)
    except Exception as e:
        logger.error(f"Error initializing session table: {e}", extra={
            "error_type": type(e).__name__,
            "database_url": "[REDACTED]"  # Don't log connection strings
        })
        raise

    if existed:
        logger.info("Session table already present", extra={"table": table_name})
    else:
        logger.info("Created session table", extra={"table": table_name})
    return not existed


def main(settings: Optional[SessionSettings] = None) -> None:
    settings = settings or SessionSettings()
    init_logging(settings)
    engine = create_db_engine(settings.database_url)
    try:
        init_database(engine, settings.table_name)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
