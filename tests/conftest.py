"""Shared test fixtures — in-memory database, repositories, API client."""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Force test config BEFORE any app imports
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "hwnow-test-logs")
os.environ["HWNOW_CONFIG_FILE"] = os.path.join(tempfile.gettempdir(), "hwnow-no-such-config.json")
os.environ["UI_AUTO_OPEN_BROWSER"] = "false"

import hwnow.database as db_mod
import hwnow.dependencies as dep_mod
from hwnow.models.base import Base
from hwnow.persistence.repository import DashboardRepository, SaveStrategy


class FakeMetricSource:
    """Deterministic metric source for monitor and API tests."""

    def __init__(self):
        self.calls = 0

    def collect(self) -> dict:
        self.calls += 1
        return {
            "timestamp": "2026-01-01T00:00:00+00:00",
            "cpu": 10.0 + self.calls,
            "ram": 50.0,
            "disk_read": 1024.0,
            "gpu_name": "Test GPU",
        }


def _reset_singletons():
    """Reset all module-level singletons so each test starts clean."""
    db_mod._engine = None
    db_mod._session_factory = None
    dep_mod._config_instance = None
    dep_mod._repository = None
    dep_mod._resource_monitor = None
    dep_mod._resource_log_writer = None
    dep_mod._gpu_process_source = None
    dep_mod._process_controller = None


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def repository(session_factory):
    return DashboardRepository(session_factory, save_strategy=SaveStrategy.REPLACE_ALL)


@pytest.fixture
def upsert_repository(session_factory):
    return DashboardRepository(session_factory, save_strategy=SaveStrategy.UPSERT)


@pytest.fixture
def fake_metric_source():
    return FakeMetricSource()


@pytest_asyncio.fixture
async def app_client(engine, session_factory, fake_metric_source):
    """API client wired to the in-memory database. The lifespan is not run."""
    from hwnow.modules.resource_monitor import ResourceMonitor

    _reset_singletons()
    db_mod._engine = engine
    db_mod._session_factory = session_factory
    dep_mod.get_app_config()
    dep_mod._resource_monitor = ResourceMonitor(
        config={"poll_interval": 60}, source=fake_metric_source
    )

    from hwnow.main import _health_cache, app

    _health_cache.clear()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # The engine fixture disposes the engine itself
    db_mod._engine = None
    db_mod._session_factory = None
    _reset_singletons()
