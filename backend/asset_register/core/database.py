from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from asset_register.core.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """
    Create an engine; SQLite gets thread sharing and FK enforcement.

    pysqlite defers ``BEGIN`` until the first DML statement and ignores
    ``FOR UPDATE``, so a file-backed SQLite database opens every transaction
    with ``BEGIN IMMEDIATE`` instead: the write lock is taken before the first
    read, and a second writer waits (busy timeout) until the first commits.
    In-memory databases share one connection and are left as they are.
    """
    kwargs: dict = {"echo": echo}
    in_memory = url in ("sqlite://", "sqlite:///:memory:")
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if in_memory:
            kwargs["poolclass"] = StaticPool
    eng = create_engine(url, **kwargs)

    if eng.dialect.name == "sqlite":
        immediate = not in_memory

        @event.listens_for(eng, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):  # pragma: no cover
            if immediate:
                # hand transaction control to the "begin" listener below
                dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        if immediate:
            @event.listens_for(eng, "begin")
            def _sqlite_begin(conn):  # pragma: no cover
                conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


_settings = get_settings()
engine = build_engine(_settings.database_url, echo=_settings.sql_echo)


def init_db(bind: Engine | None = None) -> None:
    """
    Dev-convenience: create any tables that are missing.

    In production, run Alembic migrations instead.
    """
    import asset_register.models  # noqa: F401  (registers every table)

    SQLModel.metadata.create_all(bind or engine)


@contextmanager
def session_scope(session: Session | None = None) -> Iterator[Session]:
    """
    One transaction per block: commit on success, roll back on *any*
    exception (cancellation included) and re-raise.

    When *session* is given the caller owns its lifetime; otherwise a short
    lived session bound to the module engine is opened and closed here.
    """
    if session is None:
        with Session(engine) as ses:
            with session_scope(ses) as inner:
                yield inner
        return

    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
