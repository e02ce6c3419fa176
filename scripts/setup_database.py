#!/usr/bin/env python3
"""
Database setup script for the session store.

Creates the sessions table, reports expired rows and, when no keys are
configured, prints a freshly generated key pair to put in SESSION_KEY_PAIRS.
"""

import sys
from pathlib import Path

from sqlalchemy.orm import sessionmaker

from ormsession.core.config import SessionSettings
from ormsession.core.security import generate_key
from ormsession.db.init_db import init_database
from ormsession.db.models.session_store import session_model
from ormsession.db.repository import SessionRepository
from ormsession.db.session import create_db_engine
from ormsession.store import utcnow


def main() -> bool:
    """Initialize the sessions table based on configuration"""
    settings = SessionSettings()
    print("Session Store Database Setup")
    print("=" * 40)
    print(f"Table: {settings.table_name}")

    if settings.database_url.startswith("sqlite:///"):
        Path(settings.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(settings.database_url)
    try:
        created = init_database(engine, settings.table_name)
        print("Table created" if created else "Table already exists")

        repository = SessionRepository(
            sessionmaker(bind=engine, expire_on_commit=False),
            session_model(settings.table_name),
        )
        print(f"Expired rows awaiting cleanup: {repository.count_expired(utcnow())}")
    except Exception as e:
        print(f"Database initialization failed: {e}")
        return False
    finally:
        engine.dispose()

    if settings.secure and not settings.key_pairs:
        print("\nNo SESSION_KEY_PAIRS configured. Example value:")
        print(f'SESSION_KEY_PAIRS=["{generate_key()}", "{generate_key()}"]')

    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
