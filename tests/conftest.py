"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from brigade.database.models import Base, Operator


# ---------------------------------------------------------------------------
# SQLite stand-ins for the PostgreSQL-only column types.
# event_log.metadata is JSONB; BIGINT primary keys would not autoincrement.
# ---------------------------------------------------------------------------
@compiles(JSONB, "sqlite")
def _jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """A fixed aware UTC instant."""
    return NOW


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite roster shared across threads, so ``run_db`` sees it."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


def make_operator(**overrides) -> Operator:
    """An unsaved operator with sensible defaults.  Usable in pure engine tests."""
    fields = {"discord_id": 1001, "display_name": "Ghost"}
    fields.update(overrides)
    return Operator(**fields)


def add_operator(engine: Engine, **overrides) -> Operator:
    """Insert an operator and return it detached."""
    with Session(engine, expire_on_commit=False) as session:
        operator = make_operator(**overrides)
        session.add(operator)
        session.commit()
        return operator
