"""
townsquare.database.engine — Database Connection & Async Helper
================================================================

Every service in Townsquare is **synchronous** and owns its transaction:
it opens a session with :func:`get_session`, performs the edge mutation
and the counter adjustment together, and commits once.  A failure
anywhere rolls both back.

FastAPI handlers and the maintenance loop live on an ``asyncio`` event
loop, so they reach the services through :func:`run_db`, which ships the
call to a thread pool via ``asyncio.to_thread()``.

Usage::

    from townsquare.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler:
    post = await run_db(content_service.create_post, engine, ...)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session

from townsquare.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or the ``DATABASE_URL`` env var.

    Pool sizing:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        # SQLite has no server-side pool; the pooling knobs do not apply.
        engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        configure_sqlite(engine)
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


def configure_sqlite(engine: Engine) -> None:
    """Give SQLite the transaction semantics the services rely on.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINT nesting and lets two writers deadlock on lock promotion.
    The driver's own transaction handling is switched off and every
    transaction opens with ``BEGIN IMMEDIATE``, so writers queue on the
    busy timeout instead.  Foreign keys are enforced as on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`townsquare.database.models`.

    Safe to call on every startup.  In production the schema is managed by
    Alembic (``alembic upgrade head``); ``create_all`` covers dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on exception.

    Objects stay loaded after commit (``expire_on_commit=False``) so
    services can hand ORM rows back to callers.

    Usage::

        with get_session(engine) as session:
            session.add(Membership(user_id="u1", community_id=7))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** service function on a background thread.

    Every service call made from an async context goes through here::

        result = await run_db(membership_service.follow_community, engine, user, cid)

    Under the hood it calls :func:`asyncio.to_thread`, so the event loop is
    never blocked by database I/O.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
