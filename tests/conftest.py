import os
from datetime import datetime, timedelta

# no real backoff between read retries in tests
os.environ.setdefault("RETRY_BACKOFF_SECONDS", "0")

import httpx
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from parking_logs.core.config import get_settings
from parking_logs.main import create_app
from parking_logs.models.common import utcnow
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.schemas.audit import Actor
from parking_logs.services.audit_service import AuditService

get_settings.cache_clear()

@pytest.fixture
def now():
    # stored datetimes keep millisecond precision only
    return utcnow().replace(microsecond=0)


@pytest.fixture
def hours_ago(now):
    def _at(hours: float) -> datetime:
        return now - timedelta(hours=hours)

    return _at


@pytest.fixture
def collection():
    return AsyncMongoMockClient()["parking_test"]["logs"]


@pytest.fixture
def repo(collection):
    return AuditRepository(collection)


@pytest_asyncio.fixture
async def audit_service(repo):
    service = AuditService(repo)
    yield service
    await service.drain()


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", email="admin@parking.test", role="admin")


@pytest.fixture
def seed(collection):
    async def _seed(*docs):
        for doc in docs:
            await collection.insert_one(dict(doc))

    return _seed


@pytest_asyncio.fixture
async def client(audit_service):
    app = create_app(audit_service=audit_service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
