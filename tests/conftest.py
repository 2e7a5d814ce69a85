"""
Global pytest configuration and fixtures for load simulator tests.

This module provides:
- Fake asyncpg pool, store and manual clock fixtures (see fakes.py)
- Wired services and a FastAPI test client that never touch a real database
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import FakeAsyncpgPool, FakeStore, ManualClock, make_pool
from loadsim.config import Settings
from loadsim.connectors.postgres_pool import PostgresConnectionPool
from loadsim.core.broadcast import BroadcastChannel
from loadsim.core.gateway import QueryGateway
from loadsim.core.services import Services, build_services


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> FakeStore:
    return FakeStore(clock)


@pytest.fixture
def backend(store: FakeStore) -> FakeAsyncpgPool:
    return FakeAsyncpgPool(store)


@pytest.fixture
def pool(backend: FakeAsyncpgPool) -> PostgresConnectionPool:
    return make_pool(backend)


@pytest.fixture
def channel() -> BroadcastChannel:
    return BroadcastChannel(queue_size=200)


@pytest.fixture
def gateway(
    pool: PostgresConnectionPool, channel: BroadcastChannel, clock: ManualClock
) -> QueryGateway:
    return QueryGateway(pool, channel, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        POSTGRES_CONNECT_ON_STARTUP=False,
        GENERATOR_ENABLED=False,
        APP_DEBUG=True,
    )


@pytest.fixture
def services(test_settings: Settings, pool: PostgresConnectionPool) -> Services:
    return build_services(test_settings, pool=pool)


@pytest.fixture
def client(services: Services):
    """
    Synchronous FastAPI test client wired to fake services.

    The lifespan is not run, so no database connection is attempted.
    """
    from loadsim.main import app

    app.state.services = services
    yield TestClient(app)
    app.state.services = None
