from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ConfigDict, Field, field_validator

from parking_logs.core.enums import LogAction, LogLevel
from parking_logs.models.common import ParkingBaseModel, oid_str
from parking_logs.utils.mongo import serialize_mongo


class LogDetails(ParkingBaseModel):
    """Free-form event payload; unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    previous_state: Optional[Any] = Field(default=None, alias="previousState")
    new_state: Optional[Any] = Field(default=None, alias="newState")
    error: Optional[str] = None
    stack_trace: Optional[str] = Field(default=None, alias="stackTrace")
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class RequestContext(ParkingBaseModel):
    """HTTP context of the request that produced the event."""

    model_config = ConfigDict(extra="allow")

    method: Optional[str] = None
    url: Optional[str] = None
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    response_time: Optional[float] = Field(default=None, alias="responseTime")
    ip: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="userAgent")

    # marks the record written for an administrator's own log viewing
    self_audit: Optional[bool] = Field(default=None, alias="selfAudit")


class AuditLogCreate(ParkingBaseModel):
    """
    An event as accepted by the ingestion boundary.

    There is deliberately no id field: ids are assigned by the store.
    """

    level: LogLevel
    action: LogAction
    message: str = Field(..., min_length=1)

    user_id: Optional[str] = Field(default=None, alias="userId")
    resource: Optional[str] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")

    details: Optional[LogDetails] = None
    context: Optional[RequestContext] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v

    @field_validator("user_id", "resource_id", mode="before")
    @classmethod
    def ids_as_str(cls, v):
        if v is None:
            return None
        return str(v)

    def to_document(self, now: datetime) -> dict:
        doc = self.model_dump(by_alias=True, exclude_none=True)
        doc["createdAt"] = now
        doc["updatedAt"] = now
        return doc


class AuditLogOut(ParkingBaseModel):
    id: str
    level: LogLevel
    action: LogAction
    message: str

    user_id: Optional[str] = Field(default=None, alias="userId")
    resource: Optional[str] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")

    details: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None

    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @classmethod
    def from_document(cls, doc: dict) -> "AuditLogOut":
        data = dict(doc)
        data["id"] = oid_str(data.pop("_id"))
        for key in ("details", "context"):
            if data.get(key) is not None:
                data[key] = serialize_mongo(data[key])
        return cls.model_validate(data)
