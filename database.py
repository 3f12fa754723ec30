"""
Database helpers: SQLAlchemy engine, session factory and the unit-of-work
boundary every multi-row write goes through.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import DATABASE_URL

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    # Naive UTC so values compare the same after a round trip through SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


engine = None
SessionLocal = sessionmaker(autoflush=True, expire_on_commit=True)


def _sqlite_engine(url: str):
    eng = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself (see _on_begin).
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        # Take the write lock up front so concurrent writers queue on the
        # busy timeout instead of failing on lock upgrade.
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


def configure(url: str = DATABASE_URL):
    """(Re)build the engine for ``url`` and bind the session factory to it."""
    global engine
    if engine is not None:
        engine.dispose()
    if url.startswith("sqlite"):
        engine = _sqlite_engine(url)
    else:
        engine = create_engine(url, pool_pre_ping=True)
    SessionLocal.configure(bind=engine)
    logger.debug("Database configured for %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db():
    """Create tables if they don't exist yet."""
    import models  # noqa: F401  registers the mappers on Base.metadata

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(session: Session):
    """Commit everything done inside the block, or nothing at all."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


configure()
