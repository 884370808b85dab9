from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from book_lending.db.base import Base

logger = logging.getLogger("book_lending.db")

SQLITE_BUSY_TIMEOUT_SECONDS = 15


def create_lending_engine(db_url: str) -> Engine:
    """Create the engine for the lending database.

    SQLite gets foreign keys switched on and every transaction opened with
    ``BEGIN IMMEDIATE``: the write lock is taken up front, so two writers
    queue on the busy timeout instead of failing a read-to-write lock
    upgrade. In-memory SQLite URLs share a single connection so every
    session sees the same database.
    """
    if not db_url.startswith("sqlite"):
        return create_engine(db_url, pool_pre_ping=True)

    options: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
    }
    if ":memory:" in db_url or db_url.rstrip("/") in {"sqlite:", "sqlite+pysqlite:"}:
        options["poolclass"] = StaticPool
    engine = create_engine(db_url, **options)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Hand transaction control to the "begin" listener below.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class LendingDatabase:
    """Process-wide engine and session factory with an explicit lifecycle.

    ``open()`` acquires the engine and makes sure the tables exist;
    ``close()`` disposes the pool. Sessions are only handed out while open.
    """

    def __init__(self, db_url: str) -> None:
        self.db_url = db_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("LendingDatabase is not open.")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "LendingDatabase":
        if self._engine is not None:
            return self
        # Registers the mapped tables on Base.metadata.
        from book_lending.models import lending_models  # noqa: F401

        engine = create_lending_engine(self.db_url)
        Base.metadata.create_all(engine)
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        logger.info("Lending database opened (%s)", engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Lending database closed")

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("LendingDatabase is not open.")
        return self._session_factory()

    def __enter__(self) -> "LendingDatabase":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
