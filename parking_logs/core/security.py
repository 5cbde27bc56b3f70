# parking_logs/core/security.py
from fastapi import HTTPException, Request, status

from parking_logs.core.enums import UserRole
from parking_logs.schemas.audit import Actor


def get_current_admin(request: Request) -> Actor:
    """
    Admin guard.

    The JWT layer in front of this service authenticates the caller and
    forwards its identity as X-User-Id / X-User-Email / X-Role. The actor is
    also parked on request.state so the audit capture middleware can read it
    after the response is produced.
    """
    role = request.headers.get("X-Role", "")

    if role != UserRole.admin.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )

    actor = Actor(
        user_id=request.headers.get("X-User-Id") or "unknown",
        email=request.headers.get("X-User-Email"),
        role=role,
    )
    request.state.actor = actor
    return actor
