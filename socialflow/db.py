# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import os
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = "/data/clients/_config/socialflow.db"


def resolve_db_path(db_path: str | None = None) -> str:
    return db_path or os.getenv("DB_PATH") or DEFAULT_DB_PATH


def create_sqlite_engine(db_path: str | None = None) -> Engine:
    """Engine for the workflow engine's SQLite file.

    Every connection turns on foreign keys and WAL journaling so a script can
    run next to the workflow engine without "database is locked" errors.
    """
    path = resolve_db_path(db_path)
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


@contextmanager
def session_scope(engine: Engine):
    """One transaction: commit on success, roll back and re-raise on error."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db: Session = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
