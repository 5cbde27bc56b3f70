# parking_logs/models/common.py
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def oid_str(x) -> str | None:
    return None if x is None else str(x)


def utcnow() -> datetime:
    """Current UTC time as the naive datetime Mongo stores and returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ParkingBaseModel(BaseModel):
    """
    Fields are snake_case in Python and camelCase in Mongo and on the wire.
    Either name is accepted on input.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        use_enum_values=True,
    )
