from __future__ import annotations

import pytest

from docpipe.config import Settings
from docpipe.services.repository import InMemoryDocumentRepository
from tests.helpers import FakeClock, FakeRedis, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def repository() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
