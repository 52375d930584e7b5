"""Pytest configuration and fixtures for Logvault tests.

Test isolation strategy:
- Every test gets its own in-memory SQLite database (StaticPool keeps the
  single connection alive for the test's lifetime)
- The archive side-tables, the stats table and the default day shard are
  created up front; tests add extra shards through factories
- API tests share the test's db_session with the app via dependency override
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from logvault.app import add_request_id_middleware, create_app
from logvault.config import clear_settings_cache
from logvault.db.engine import create_db_engine
from logvault.db.schema import create_archive_schema
from logvault.db.session import create_session_factory, get_db
from logvault.services.archive import ArchiveSession
from tests.factories import create_shard
from tests.helpers import OWNER_ID, TEST_DATE, TEST_HOST, owner_headers


@pytest.fixture(autouse=True)
def settings_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Point settings at the test archive for every test."""
    monkeypatch.setenv("LOGVAULT_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite://")
    monkeypatch.setenv("LOGVAULT_XMPP_HOST", TEST_HOST)
    monkeypatch.setenv("LOGVAULT_LOG_JSON", "false")
    monkeypatch.delenv("LOGVAULT_INTERNAL_SECRET", raising=False)
    monkeypatch.delenv("LOGVAULT_RESTORE_COMPENSATION", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory archive with the default day shard."""
    engine = create_db_engine(
        "sqlite+pysqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_archive_schema(engine, TEST_HOST)
    create_shard(engine, TEST_DATE)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def archive(db_session: Session) -> ArchiveSession:
    """Archive session for OWNER_ID with default settings."""
    session = ArchiveSession(db_session, TEST_HOST)
    assert session.set_owner(OWNER_ID)
    return session


@pytest.fixture
def app(db_session: Session):
    """FastAPI app (owner + request-id middleware) bound to the test database."""
    app = create_app()
    add_request_id_middleware(app, log_requests=False)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def owner_client(client: TestClient) -> TestClient:
    """Client sending the owner header on every request."""
    client.headers.update(owner_headers(OWNER_ID))
    return client
