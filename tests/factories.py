from parking_logs.models.common import utcnow


def make_event(level="info", action="login", user_id=None, created_at=None, **extra):
    """A stored log document as the ingestion path would write it."""
    created_at = created_at or utcnow()
    doc = {
        "level": level,
        "action": action,
        "message": extra.pop("message", f"{action} event"),
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    if user_id is not None:
        doc["userId"] = user_id
    doc.update(extra)
    return doc


# identity as forwarded by the auth layer in front of the service
ADMIN_HEADERS = {
    "X-Role": "admin",
    "X-User-Id": "admin-1",
    "X-User-Email": "admin@parking.test",
}
