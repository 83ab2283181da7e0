"""
Database configuration and session management.

The store is an embedded SQLite file. Connections are tuned on connect
(WAL journal, foreign keys, busy timeout) so concurrent readers do not
block the single writer of an aggregation pass.
"""
import os
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from tracker.core.config import settings
from tracker.core.logging import get_logger

logger = get_logger(__name__)

SQLITE_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("busy_timeout", "5000"),
    ("foreign_keys", "ON"),
    ("temp_store", "MEMORY"),
)


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for name, value in SQLITE_PRAGMAS:
            cursor.execute(f"PRAGMA {name} = {value}")
    finally:
        cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite URLs get thread-sharing enabled (FastAPI runs sync dependencies
    in a threadpool) and the pragma hook registered.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    db_engine = create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
        echo=os.getenv("SQL_ECHO", "false").lower() == "true"
    )

    if db_engine.dialect.name == "sqlite":
        event.listen(db_engine, "connect", _set_sqlite_pragmas)

    return db_engine


DATABASE_URL = settings.DATABASE_URL

engine = create_db_engine(DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
    ```python
    @router.get("/endpoint")
    def endpoint(db: Session = Depends(get_db)):
        ...
    ```
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Initialize database tables."""
    from tracker.models import Base
    # checkfirst=True will only create tables that don't exist
    Base.metadata.create_all(bind=bind or engine, checkfirst=True)
    logger.info("Database tables ready", extra={"url": str((bind or engine).url)})
