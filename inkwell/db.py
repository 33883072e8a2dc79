"""SQLite engine and session factory for the Inkwell store.

The engine is created once per database URL. In-memory URLs share a single
connection (``StaticPool``) so every thread sees the same database, which is
what the test-suite and FastAPI's threadpool need.
"""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inkwell.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """Create an engine for *database_url* and make sure all tables exist."""
    kwargs: dict = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    if database_url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    Base.metadata.create_all(engine)
    logger.info("[DB] Engine ready for %s", database_url)
    return engine


@lru_cache(maxsize=8)
def get_engine(database_url: str) -> Engine:
    """Return the process-wide engine for *database_url*."""
    return create_db_engine(database_url)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Build a ``sessionmaker`` bound to *engine*."""
    return sessionmaker(bind=engine, expire_on_commit=False)
