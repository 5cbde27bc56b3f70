import csv
import io
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import AutoReconnect

from parking_logs.repositories.audit_repository import AuditRepository
from tests.factories import ADMIN_HEADERS, make_event


@pytest.mark.asyncio
async def test_requires_admin_role(client):
    response = await client.get("/admin/logs", headers={"X-Role": "user", "X-User-Id": "u1"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_logs(client, seed, hours_ago):
    await seed(
        make_event("info", "create_reservation", "u1", hours_ago(2)),
        make_event("info", "create_reservation", "u2", hours_ago(1)),
        make_event("warn", "role_change", "admin-1", hours_ago(3)),
    )

    response = await client.get(
        "/admin/logs", params={"action": "create_reservation"}, headers=ADMIN_HEADERS
    )

    assert response.status_code == 200
    body = response.json()
    assert [e["userId"] for e in body["events"]] == ["u2", "u1"]
    assert body["pagination"]["total"] == 2
    assert body["pagination"]["pageSize"] == 50
    assert body["summary"]["infoCount"] == 2
    assert body["summary"]["uniqueUsers"] == 2
    assert response.headers["X-Result-Count"] == "2"


@pytest.mark.asyncio
async def test_list_hides_own_access_records(client, audit_service, seed):
    await seed(make_event("info", "login", "u1"))

    await client.get("/admin/logs", headers=ADMIN_HEADERS)
    await audit_service.drain()
    response = await client.get("/admin/logs", headers=ADMIN_HEADERS)

    assert [e["action"] for e in response.json()["events"]] == ["login"]
    await audit_service.drain()

    response = await client.get(
        "/admin/logs", params={"action": "access_logs"}, headers=ADMIN_HEADERS
    )
    assert response.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params, field",
    [
        ({"page": "0"}, "page"),
        ({"pageSize": "1001"}, "pageSize"),
        ({"pageSize": "0"}, "pageSize"),
        ({"level": "fatal"}, "level"),
        ({"action": "teleport"}, "action"),
        ({"sortBy": "password"}, "sortBy"),
        ({"startDate": "yesterday"}, "startDate"),
    ],
)
async def test_invalid_filters_name_the_field(client, params, field):
    response = await client.get("/admin/logs", params=params, headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["field"] == field


@pytest.mark.asyncio
async def test_end_before_start_is_rejected(client, now):
    response = await client.get(
        "/admin/logs",
        params={
            "startDate": now.isoformat(),
            "endDate": (now - timedelta(days=1)).isoformat(),
        },
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["field"] == "endDate"


@pytest.mark.asyncio
async def test_page_size_at_ceiling_is_accepted(client):
    response = await client.get("/admin/logs", params={"pageSize": "1000"}, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["pagination"]["pageSize"] == 1000


@pytest.mark.asyncio
async def test_store_outage_returns_generic_503(client, audit_service, monkeypatch):
    monkeypatch.setattr(
        audit_service.repo, "find_page", AsyncMock(side_effect=RuntimeError("db-host:27017 refused"))
    )

    response = await client.get("/admin/logs", headers=ADMIN_HEADERS)

    assert response.status_code == 503
    assert response.json() == {"detail": "could not complete query"}


@pytest.mark.asyncio
async def test_read_retried_once_on_transient_error(collection, seed):
    await seed(make_event("info", "login", "u1"), make_event("info", "login", "u2"))
    real_count = collection.count_documents
    calls = []

    async def flaky_count(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise AutoReconnect("connection reset")
        return await real_count(*args, **kwargs)

    class FlakyCollection:
        def __getattr__(self, name):
            return getattr(collection, name)

        count_documents = staticmethod(flaky_count)

    repo = AuditRepository(FlakyCollection())

    assert await repo.count({}) == 2
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_persistent_transient_error_gives_up_after_second_attempt():
    collection = AsyncMock()
    collection.count_documents.side_effect = AutoReconnect("still down")
    repo = AuditRepository(collection)

    with pytest.raises(AutoReconnect):
        await repo.count({})

    assert collection.count_documents.await_count == 2


@pytest.mark.asyncio
async def test_non_transient_error_is_not_retried():
    collection = AsyncMock()
    collection.count_documents.side_effect = ValueError("bad query")
    repo = AuditRepository(collection)

    with pytest.raises(ValueError):
        await repo.count({})

    assert collection.count_documents.await_count == 1


@pytest.mark.asyncio
async def test_statistics_endpoint(client, seed, now):
    await seed(make_event("info", "login", "u1", now), make_event("error", "system_error", None, now))

    response = await client.get("/admin/logs/statistics", params={"daysBack": "7"},
                                headers=ADMIN_HEADERS)

    assert response.status_code == 200
    day = response.json()[-1]
    assert day["totalCount"] == 2
    assert day["countsByLevel"]["error"] == 1


@pytest.mark.asyncio
async def test_statistics_rejects_non_integer(client):
    response = await client.get("/admin/logs/statistics", params={"daysBack": "week"},
                                headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["field"] == "daysBack"


@pytest.mark.asyncio
async def test_critical_endpoint(client, seed, hours_ago):
    await seed(*[make_event("error", "system_error", None, hours_ago(1)) for _ in range(12)])

    response = await client.get("/admin/logs/critical", headers=ADMIN_HEADERS)

    body = response.json()
    assert body["count"] == 12
    assert body["alertLevel"] == "MEDIUM"
    assert body["windowHours"] == 24


@pytest.mark.asyncio
async def test_health_endpoint(client, seed):
    response = await client.get("/admin/logs/health", headers=ADMIN_HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "warning"
    assert body["eventsLastHour"] == 0
    assert body["performedBy"] == "admin-1"


@pytest.mark.asyncio
async def test_export_endpoint_csv(client, seed, hours_ago):
    await seed(*[make_event("info", "login", f"u{i}", hours_ago(i + 1)) for i in range(3)])

    response = await client.get("/admin/logs/export", params={"format": "csv"},
                                headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"parking-logs-" in response.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert len(rows) == 3


@pytest.mark.asyncio
async def test_export_without_format(client):
    response = await client.get("/admin/logs/export", headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["field"] == "format"


@pytest.mark.asyncio
async def test_export_with_no_matches(client):
    response = await client.get("/admin/logs/export", params={"format": "json"},
                                headers=ADMIN_HEADERS)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cleanup_endpoint(client, audit_service, seed, collection, now):
    await seed(
        make_event("info", "login", "u1", now - timedelta(days=200)),
        make_event("info", "login", "u2", now),
    )

    response = await client.delete("/admin/logs/cleanup", params={"ageThresholdDays": "90"},
                                   headers=ADMIN_HEADERS)
    await audit_service.drain()

    assert response.status_code == 200
    assert response.json()["deleted"] == 1
    assert await collection.count_documents({"action": "login"}) == 1
    assert await collection.count_documents({"resource": "high_privilege_operation"}) == 1
    assert await collection.count_documents({"action": "access_logs"}) == 2


@pytest.mark.asyncio
async def test_cleanup_requires_threshold(client):
    response = await client.delete("/admin/logs/cleanup", headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["field"] == "ageThresholdDays"
