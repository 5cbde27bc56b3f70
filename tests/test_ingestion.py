"""
Ingestion: validation at the boundary, and store failures that never reach
the caller.
"""

import logging
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import AutoReconnect

from parking_logs.core.enums import LogAction, LogLevel
from parking_logs.services.audit_service import AuditService


@pytest.mark.asyncio
async def test_record_persists_event_with_timestamps(audit_service, collection):
    await audit_service.record(
        LogLevel.info, LogAction.login, "User authenticated: ana@parking.test",
        "u1", "user", "u1",
        {"metadata": {"email": "ana@parking.test"}},
        {"ip": "10.0.0.1", "userAgent": "pytest"},
    )

    docs = await collection.find({}).to_list(length=None)
    assert len(docs) == 1
    doc = docs[0]
    assert doc["level"] == "info"
    assert doc["action"] == "login"
    assert doc["userId"] == "u1"
    assert doc["context"]["ip"] == "10.0.0.1"
    assert doc["details"]["metadata"]["email"] == "ana@parking.test"
    assert doc["createdAt"] == doc["updatedAt"]


@pytest.mark.asyncio
async def test_record_rejects_unknown_level(audit_service):
    with pytest.raises(ValueError):
        await audit_service.record("fatal", LogAction.login, "boom")


@pytest.mark.asyncio
async def test_record_rejects_blank_message(audit_service):
    with pytest.raises(ValueError):
        await audit_service.record(LogLevel.info, LogAction.login, "   ")


@pytest.mark.asyncio
async def test_store_failure_does_not_propagate(caplog):
    repo = AsyncMock()
    repo.insert.side_effect = AutoReconnect("primary stepped down")
    service = AuditService(repo)

    with caplog.at_level(logging.ERROR, logger="parking_logs.services.audit_service"):
        await service.record(LogLevel.error, LogAction.system_error, "disk full")

    repo.insert.assert_awaited_once()
    assert "Failed to record audit event" in caplog.text


@pytest.mark.asyncio
async def test_emit_returns_before_write_and_drain_waits(audit_service, collection):
    audit_service.emit(LogLevel.info, LogAction.logout, "User logged out", "u1")
    await audit_service.drain()

    assert await collection.count_documents({"action": "logout"}) == 1


@pytest.mark.asyncio
async def test_emit_swallows_store_failure():
    repo = AsyncMock()
    repo.insert.side_effect = RuntimeError("store unavailable")
    service = AuditService(repo)

    service.emit(LogLevel.info, LogAction.logout, "User logged out", "u1")
    await service.drain()

    repo.insert.assert_awaited_once()


@pytest.mark.asyncio
async def test_client_supplied_id_is_ignored(repo, collection):
    inserted = await repo.insert({"_id": "forged", "level": "info", "action": "login",
                                  "message": "x"})

    assert inserted != "forged"
    assert await collection.count_documents({"_id": "forged"}) == 0


@pytest.mark.asyncio
async def test_role_change_is_warn_and_critical(audit_service, collection):
    await audit_service.log_role_change("admin-1", "u7", "user", "admin")

    doc = await collection.find_one({"action": "role_change"})
    assert doc["level"] == "warn"
    assert doc["resourceId"] == "u7"
    assert doc["details"]["previousState"] == {"role": "user"}
    assert doc["details"]["newState"] == {"role": "admin"}
    assert doc["context"]["criticalOperation"] is True


@pytest.mark.asyncio
async def test_user_update_records_field_diff(audit_service, collection):
    await audit_service.log_user_updated(
        "admin-1", "u7",
        {"name": "Ana", "email": "ana@parking.test"},
        {"name": "Ana Maria", "email": "ana@parking.test"},
        reason="name correction",
    )

    doc = await collection.find_one({"action": "update_user"})
    assert doc["details"]["metadata"]["changes"] == {
        "name": {"from": "Ana", "to": "Ana Maria"},
    }
    assert doc["details"]["reason"] == "name correction"


@pytest.mark.asyncio
async def test_system_error_keeps_stack_trace(audit_service, collection):
    try:
        raise RuntimeError("payment gateway timeout")
    except RuntimeError as exc:
        await audit_service.log_system_error(exc, user_id="u3")

    doc = await collection.find_one({"action": "system_error"})
    assert doc["level"] == "error"
    assert doc["details"]["error"] == "payment gateway timeout"
    assert "RuntimeError" in doc["details"]["stackTrace"]
