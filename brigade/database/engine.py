"""
brigade.database.engine — Database Connection & Async Helper
=============================================================

Discord bots run on an ``asyncio`` event loop while SQLAlchemy + psycopg2
is synchronous.  Cogs never touch a session directly; they hand a sync
service function to :func:`run_db`, which runs it on the default thread
pool via ``asyncio.to_thread()`` and awaits the result.

Usage::

    from brigade.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async Cog method:
    snapshot = await run_db(get_operator_snapshot, engine, discord_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

from brigade.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

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

    engine = create_engine(
        url,
        echo=os.getenv("BRIGADE_SQL_ECHO") == "1",
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=10,
        pool_pre_ping=True,   # reconnect after long idle stretches
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s/%s", engine.url.host, engine.url.database)
    return engine


def check_connection(engine: Engine) -> None:
    """Fail fast at startup instead of on the first slash command."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create ``operators``, ``promotion_history`` and ``event_log`` if missing.

    Production schema is managed by Alembic (``alembic upgrade head``);
    ``create_all`` stays as a safety net for dev environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Roster tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay readable after the block exits (``expire_on_commit=False``)
    so services can hand detached records back to the cogs.
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
    """Run a synchronous database function on a background thread::

        result = await run_db(my_sync_db_function, engine, discord_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
