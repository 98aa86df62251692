"""Shared test configuration and fixtures for all tests."""

import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

# Keep tests away from real BigQuery/Redis regardless of the local .env
os.environ["STORE_BACKEND"] = "memory"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["ENVIRONMENT"] = "development"

from taskapi.app import create_app
from taskapi.cache import InMemoryTaskCache
from taskapi.config import Settings
from taskapi.schemas import utcnow
from taskapi.service import TaskService
from taskapi.store import InMemoryTaskStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryTaskStore:
    return InMemoryTaskStore(clock=clock)


@pytest.fixture
def cache() -> InMemoryTaskCache:
    return InMemoryTaskCache()


@pytest.fixture
def service(store, cache) -> TaskService:
    return TaskService(store, cache, cache_ttl=300)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(store_backend="memory", cache_backend="memory", environment="development")


@pytest.fixture
def app(test_settings, store, cache):
    return create_app(test_settings, store=store, cache=cache)


@pytest.fixture
def client(app) -> TestClient:
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def tomorrow() -> str:
    return (utcnow() + timedelta(days=1)).isoformat()


@pytest.fixture
def yesterday() -> str:
    return (utcnow() - timedelta(days=1)).isoformat()
