"""Global test fixtures and utilities for points engine tests"""
import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from vitalpoints.api.middleware import limiter
from vitalpoints.db.memory_store import InMemoryPointsStore
from vitalpoints.services.awarding_service import AwardingService
from vitalpoints.services.container import init_container, reset_container
from vitalpoints.services.query_service import QueryService


class FakeClock:
    """Settable UTC clock for AwardingService"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def next_day(self) -> None:
        self.advance(days=1)


# ============================================================================
# Store & Service Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Fresh in-memory points store"""
    return InMemoryPointsStore(lock_timeout=1.0)


@pytest.fixture
def clock():
    """Clock starting Monday 2024-01-15 12:00 UTC"""
    return FakeClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def query_service(store):
    return QueryService(store)


@pytest.fixture
def awarding_service(store, query_service, clock):
    """AwardingService on the in-memory store with a controllable clock"""
    return AwardingService(store, query_service, clock=clock, max_retries=2)


@pytest.fixture
def container(store):
    """Global service container bound to the in-memory store"""
    container = init_container(store)
    yield container
    reset_container()


# ============================================================================
# User & Auth Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "123456789"


@pytest.fixture
def unique_user_id() -> str:
    """Generate unique user ID for test isolation"""
    return f"test_user_{uuid4().hex[:12]}"


@pytest.fixture
def multiple_user_ids():
    """Generate multiple unique user IDs"""
    return [f"test_user_{uuid4().hex[:12]}" for _ in range(3)]


@pytest.fixture
def test_api_key():
    """Standard test API key"""
    return "test_api_key_12345"


@pytest.fixture
def auth_headers(test_api_key):
    """Valid authentication headers"""
    return {"Authorization": f"Bearer {test_api_key}"}


@pytest.fixture(autouse=True)
def disable_rate_limiting(monkeypatch):
    """Rate limits are keyed on client address; every test client shares one"""
    monkeypatch.setattr(limiter, "enabled", False)
