"""
Engine and session factory for the ordering store.

Orders default to a SQLite file in the working directory; set ORDERING_DB_URL
to use another database. Sessions are synchronous and repositories run them on
Starlette's threadpool, so SQLite connections must be usable from any thread.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from persistence.models import Base

DB_URL_ENV_VAR = "ORDERING_DB_URL"
DEFAULT_DB_URL = "sqlite:///./ordering.db"


def get_database_url() -> str:
    return os.getenv(DB_URL_ENV_VAR) or DEFAULT_DB_URL


def create_ordering_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return create_engine(url)

    if url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # order_items cascade on order deletion; SQLite only enforces that per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = create_ordering_engine(get_database_url())
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    with SessionLocal() as session:
        yield session


def init_db(bind: Optional[Engine] = None) -> None:
    Base.metadata.create_all(bind=bind or engine)
