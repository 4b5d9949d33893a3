"""
Pytest configuration and fixtures for HabitCircle API tests.

Engine and service tests run against the in-memory repository in fakes.py.
Integration tests marked `requires_supabase` are skipped unless Supabase is
configured (SUPABASE_URL, SUPABASE_SERVICE_KEY).
"""

import os
from datetime import datetime, timezone
from typing import Generator
from unittest.mock import AsyncMock

import pytest

# Must be set before the app modules read their settings
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["CHALLENGE_SCHEDULER_ENABLED"] = "false"
os.environ["CHALLENGE_CACHE_BACKEND"] = "memory"

from fastapi.testclient import TestClient

from main import app
from app.api.v1.endpoints.challenges import (
    get_challenge_progress_service,
    get_challenge_service,
)
from app.core.auth import create_access_token
from app.services.challenge_progress_service import ChallengeProgressService
from app.services.challenge_service import ChallengeService
from app.services.membership_cache import InMemoryMembershipBackend, MembershipCache

from fakes import InMemoryChallengeRepository

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _supabase_configured() -> bool:
    """Check if Supabase is configured for integration tests."""
    return bool(os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_SERVICE_KEY"))


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "requires_supabase: integration test against a real Supabase project"
    )


def pytest_collection_modifyitems(config, items):
    if _supabase_configured():
        return
    skip = pytest.mark.skip(
        reason="SUPABASE_URL and SUPABASE_SERVICE_KEY required for integration tests"
    )
    for item in items:
        if "requires_supabase" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def repository() -> InMemoryChallengeRepository:
    return InMemoryChallengeRepository()


@pytest.fixture
def cache(repository) -> MembershipCache:
    return MembershipCache(backend=InMemoryMembershipBackend(), repository=repository)


@pytest.fixture
def feed() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def notifications() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def progress_service(repository, cache, feed, notifications) -> ChallengeProgressService:
    return ChallengeProgressService(
        repository=repository,
        cache=cache,
        feed=feed,
        notifications=notifications,
        clock=lambda: NOW,
    )


@pytest.fixture
def challenge_service(repository, cache, feed) -> ChallengeService:
    return ChallengeService(repository=repository, cache=cache, feed=feed)


@pytest.fixture
def client(challenge_service, progress_service) -> Generator[TestClient, None, None]:
    """Test client for the FastAPI app, wired to the in-memory services."""
    app.dependency_overrides[get_challenge_service] = lambda: challenge_service
    app.dependency_overrides[get_challenge_progress_service] = lambda: progress_service
    with TestClient(app, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def api_base() -> str:
    """Base path for API v1 endpoints."""
    return "/api/v1"


@pytest.fixture
def auth_headers_for():
    """Build bearer headers for an arbitrary user id."""

    def _headers(user_id: str) -> dict:
        token = create_access_token({"user_id": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers
