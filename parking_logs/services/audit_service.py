"""
Ingestion path for audit events.

record() is best effort: a store failure is reported through the process
logger and swallowed, so an audit write can never turn a successful business
operation into a failed one. emit() goes one step further and does not even
wait for the write.
"""

import asyncio
import logging
import traceback
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from parking_logs.core.enums import LogAction, LogLevel
from parking_logs.models.audit_log import AuditLogCreate
from parking_logs.models.common import utcnow
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.utils.diff import diff_fields

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, repo: AuditRepository):
        self.repo = repo
        self._pending: Set[asyncio.Task] = set()

    def build_event(
        self,
        level,
        action,
        message: str,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> AuditLogCreate:
        """Validate an event at the ingestion boundary; raises ValueError on bad input."""
        try:
            return AuditLogCreate(
                level=level,
                action=action,
                message=message,
                user_id=user_id,
                resource=resource,
                resource_id=resource_id,
                details=details,
                context=context,
            )
        except ValidationError as exc:
            raise ValueError(f"invalid audit event: {exc.errors()[0]['msg']}") from None

    async def record(self, level, action, message: str, user_id=None, resource=None,
                     resource_id=None, details=None, context=None) -> None:
        event = self.build_event(level, action, message, user_id, resource,
                                 resource_id, details, context)
        await self._write(event)

    def emit(self, level, action, message: str, user_id=None, resource=None,
             resource_id=None, details=None, context=None) -> None:
        """Fire-and-forget record(); returns before the write reaches the store."""
        event = self.build_event(level, action, message, user_id, resource,
                                 resource_id, details, context)
        task = asyncio.create_task(self._write(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every emitted write still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _write(self, event: AuditLogCreate) -> None:
        try:
            await self.repo.insert(event.to_document(utcnow()))
            logger.debug("Audit event recorded: %s - %s", event.action, event.message)
        except Exception:
            logger.error(
                "Failed to record audit event %s (%s)",
                event.action,
                event.message,
                exc_info=True,
            )

    # -------------------------
    # Business events
    # -------------------------
    async def log_user_login(self, user_id: str, email: str, context=None):
        await self.record(
            LogLevel.info, LogAction.login, f"User authenticated: {email}",
            user_id, "user", user_id, {"metadata": {"email": email}}, context,
        )

    async def log_user_logout(self, user_id: str, email: str, context=None):
        await self.record(
            LogLevel.info, LogAction.logout, f"User logged out: {email}",
            user_id, "user", user_id, {"metadata": {"email": email}}, context,
        )

    async def log_reservation_created(self, user_id: str, reservation_id: str,
                                      plaza_id, vehicle_id: str, details=None):
        await self.record(
            LogLevel.info, LogAction.create_reservation,
            f"Reservation created: {reservation_id} - Plaza {plaza_id}",
            user_id, "reserva", reservation_id,
            {"metadata": {"plazaId": plaza_id, "vehicleId": vehicle_id, **(details or {})}},
        )

    async def log_reservation_cancelled(self, user_id: str, reservation_id: str,
                                        plaza_id, details=None):
        await self.record(
            LogLevel.info, LogAction.cancel_reservation,
            f"Reservation cancelled: {reservation_id} - Plaza {plaza_id}",
            user_id, "reserva", reservation_id,
            {"metadata": {"plazaId": plaza_id, **(details or {})}},
        )

    async def log_role_change(self, admin_user_id: str, target_user_id: str,
                              previous_role: str, new_role: str):
        await self.record(
            LogLevel.warn, LogAction.role_change,
            f"Administrator {admin_user_id} changed role of user {target_user_id} "
            f"from {previous_role} to {new_role}",
            admin_user_id, "user", target_user_id,
            {
                "previousState": {"role": previous_role},
                "newState": {"role": new_role},
                "metadata": {"changedBy": admin_user_id},
            },
            {"method": "PATCH", "criticalOperation": True},
        )

    async def log_user_updated(self, admin_user_id: str, target_user_id: str,
                               previous_state: dict, new_state: dict,
                               reason: Optional[str] = None):
        changes = diff_fields(previous_state, new_state)
        await self.record(
            LogLevel.info, LogAction.update_user,
            f"Administrator {admin_user_id} updated user {target_user_id}",
            admin_user_id, "user", target_user_id,
            {
                "previousState": previous_state,
                "newState": new_state,
                "reason": reason,
                "metadata": {"changes": changes, "updatedBy": admin_user_id},
            },
            {"method": "PATCH"},
        )

    async def log_system_error(self, error: BaseException, context=None,
                               user_id: Optional[str] = None):
        await self.record(
            LogLevel.error, LogAction.system_error,
            f"System error: {error}",
            user_id, "system", None,
            {
                "error": str(error),
                "stackTrace": "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
            },
            context,
        )
