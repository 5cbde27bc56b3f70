"""
Audit capture for the admin log endpoints.

Every request under the watched prefixes produces one access record once the
response is ready. Requests classified as high privilege produce a second,
warn-level record carrying the actor snapshot so they can be reviewed on
their own. Both writes are fire-and-forget.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from parking_logs.core.enums import LogAction, LogLevel
from parking_logs.services.audit_service import AuditService

logger = logging.getLogger(__name__)

WATCHED_PREFIXES = ("/admin/logs", "/admin/dashboard")

RESULT_COUNT_HEADER = "X-Result-Count"

# path pattern -> admin action; "*" matches exactly one segment
ADMIN_ROUTE_ACTIONS = {
    "/admin/logs/export": "export_logs",
    "/admin/logs/statistics": "view_statistics",
    "/admin/logs/critical": "view_critical_events",
    "/admin/logs/health": "system_health_check",
    "/admin/logs/cleanup": "cleanup_logs",
    "/admin/logs/*": "view_specific_log",
    "/admin/logs": "query_logs",
    "/admin/dashboard": "view_dashboard",
}
UNKNOWN_ADMIN_ACTION = "unknown_admin_action"

SENSITIVE_ACTIONS = frozenset({
    "export_logs",
    "view_critical_events",
    "view_statistics",
    "system_health_check",
})

HIGH_PRIVILEGE_ACTIONS = frozenset({
    "export_logs",
    "view_critical_events",
    "system_health_check",
    "cleanup_logs",
})


def _segments(path: str) -> Tuple[str, ...]:
    return tuple(s for s in path.split("/") if s)


def _specificity(pattern: Tuple[str, ...]) -> Tuple[int, int]:
    return sum(1 for s in pattern if s != "*"), len(pattern)


def classify_admin_action(path: str) -> str:
    """Most specific pattern matching a prefix of the path wins."""
    segments = _segments(path)
    best, best_rank = UNKNOWN_ADMIN_ACTION, (-1, -1)
    for pattern, action in ADMIN_ROUTE_ACTIONS.items():
        parts = _segments(pattern)
        if len(parts) > len(segments):
            continue
        if all(p == "*" or p == s for p, s in zip(parts, segments)):
            rank = _specificity(parts)
            if rank > best_rank:
                best, best_rank = action, rank
    return best


def is_sensitive_data_access(action: str) -> bool:
    return action in SENSITIVE_ACTIONS


def is_high_privilege_action(action: str) -> bool:
    return action in HIGH_PRIVILEGE_ACTIONS


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


@dataclass
class CapturedResponse:
    """What the middleware observed about a finished response."""

    status_code: int
    response_time_ms: float
    content_length: int
    records_affected: int

    @property
    def successful(self) -> bool:
        return 200 <= self.status_code < 300


class AuditCaptureMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(WATCHED_PREFIXES):
            return await call_next(request)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            # unhandled route error: still one record, then let the 500 handler run
            self._safe_capture(request, CapturedResponse(
                status_code=500,
                response_time_ms=_elapsed_ms(start),
                content_length=0,
                records_affected=0,
            ))
            raise

        self._safe_capture(request, CapturedResponse(
            status_code=response.status_code,
            response_time_ms=_elapsed_ms(start),
            content_length=int(response.headers.get("content-length") or 0),
            records_affected=int(response.headers.get(RESULT_COUNT_HEADER) or 0),
        ))
        return response

    def _safe_capture(self, request: Request, captured: CapturedResponse) -> None:
        try:
            self.capture(request, captured)
        except Exception:
            logger.error("Failed to capture admin access for %s %s",
                         request.method, request.url.path, exc_info=True)

    def capture(self, request: Request, captured: CapturedResponse) -> None:
        audit_service: AuditService = request.app.state.audit_service
        actor = getattr(request.state, "actor", None)
        user_id = actor.user_id if actor else "unknown"

        admin_action = classify_admin_action(request.url.path)
        sensitive = is_sensitive_data_access(admin_action)
        high_privilege = is_high_privilege_action(admin_action)
        ip = client_ip(request)
        user_agent = request.headers.get("user-agent", "unknown")
        query_params = dict(request.query_params)

        logger.debug("Admin access: %s %s by %s -> %s",
                     request.method, request.url.path, user_id, admin_action)

        audit_service.emit(
            LogLevel.info if captured.successful else LogLevel.warn,
            LogAction.access_logs,
            f"Admin access: {admin_action}",
            user_id,
            "admin_panel",
            None,
            {
                "metadata": {
                    "adminAction": admin_action,
                    "queryParams": query_params,
                    "success": captured.successful,
                    "recordsAffected": captured.records_affected,
                    "exportFormat": query_params.get("format"),
                    "filterApplied": bool(query_params),
                    "contentLength": captured.content_length,
                },
            },
            {
                "method": request.method,
                "url": str(request.url.path),
                "statusCode": captured.status_code,
                "responseTime": captured.response_time_ms,
                "ip": ip,
                "userAgent": user_agent,
                "adminOperation": True,
                "sensitiveDataAccess": sensitive,
                "highPrivilegeAction": high_privilege,
                "selfAudit": True,
            },
        )

        if high_privilege:
            audit_service.emit(
                LogLevel.warn,
                LogAction.access_logs,
                "High-sensitivity administrative operation executed",
                user_id,
                "high_privilege_operation",
                None,
                {
                    "metadata": {
                        "operation": admin_action,
                        "ip": ip,
                        "userContext": _actor_snapshot(actor),
                    },
                },
                {
                    "method": request.method,
                    "url": str(request.url.path),
                    "statusCode": captured.status_code,
                    "ip": ip,
                    "userAgent": user_agent,
                    "criticalOperation": True,
                    "requiresReview": True,
                },
            )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _actor_snapshot(actor) -> Optional[dict]:
    if actor is None:
        return {"userId": None, "email": None, "role": None}
    return {"userId": actor.user_id, "email": actor.email, "role": actor.role}
