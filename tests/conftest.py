from __future__ import annotations

import os
import uuid
from collections.abc import Generator

import pytest

from taskdeck.observability import reset_metrics
from taskdeck.storage import InMemoryMedium, VersionedKeyValueStore
from taskdeck.tasks import TaskRepository
from tests.helpers.media import RecordingHandler, recording_logger


def _redis_ping(url: str) -> bool:
    try:
        import redis

        return bool(redis.Redis.from_url(url).ping())
    except Exception:
        return False


@pytest.fixture(autouse=True)
def _fresh_metrics() -> Generator[None, None, None]:
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def medium() -> InMemoryMedium:
    return InMemoryMedium()


@pytest.fixture()
def log() -> RecordingHandler:
    """Handler attached to a private logger; pass ``log.logger`` to components."""
    return recording_logger(f"taskdeck.test.{uuid.uuid4().hex[:8]}")


@pytest.fixture()
def store(medium: InMemoryMedium, log: RecordingHandler) -> VersionedKeyValueStore:
    return VersionedKeyValueStore(medium, "testapp", "1.0", logger=log.logger)


@pytest.fixture()
def repo(store: VersionedKeyValueStore, log: RecordingHandler) -> TaskRepository:
    return TaskRepository(store, logger=log.logger)


@pytest.fixture(scope="session")
def redis_url() -> str:
    """Reachable Redis URL from REDIS_URL (or localhost); skip otherwise."""
    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    if not _redis_ping(url):
        pytest.skip("Redis not available; set REDIS_URL or start local Redis")
    return url
