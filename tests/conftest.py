"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of townsquare.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from townsquare.database.engine import configure_sqlite, create_db_engine  # noqa: E402
from townsquare.database.models import Base, CommunityType  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Townsquare tables.

    Uses StaticPool so all threads share the same in-memory database
    (FastAPI runs sync routes on a worker thread).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that hit the DB from many threads."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'townsquare.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for direct row inspection; rolled back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Domain helpers
# ---------------------------------------------------------------------------
def make_community(
    engine: Engine,
    name: str = "Springfield",
    community_type: CommunityType = CommunityType.CITY,
    *,
    created_by: str = "founder",
    parent_id: int | None = None,
):
    from townsquare.services import community_service

    return community_service.create_community(
        engine,
        name=name,
        community_type=community_type,
        created_by=created_by,
        parent_id=parent_id,
    )


@pytest.fixture
def hierarchy(db_engine):
    """Springfield (city) → Shelbyville Municipality → Evergreen Terrace (local)."""
    city = make_community(db_engine, "Springfield", CommunityType.CITY)
    municipality = make_community(
        db_engine, "Springfield North", CommunityType.MUNICIPALITY, parent_id=city.id,
    )
    local = make_community(
        db_engine, "Evergreen Terrace", CommunityType.LOCAL, parent_id=municipality.id,
    )
    return city, municipality, local


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(sub: str, *, is_admin: bool = False) -> str:
    """Create a bearer JWT for *sub*.  Usable from tests and fixtures."""
    import jwt

    from townsquare.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "is_admin": is_admin}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(sub: str, *, is_admin: bool = False) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, is_admin=is_admin)}"}


@pytest.fixture
def admin_token():
    return make_token("ops-admin", is_admin=True)


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient bound to the in-memory engine and default config."""
    from fastapi.testclient import TestClient

    from townsquare.api.deps import get_config, get_engine
    from townsquare.api.main import app
    from townsquare.config import TownsquareConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: TownsquareConfig()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
