from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, ValidationError, field_validator, model_validator

from parking_logs.core.config import get_settings
from parking_logs.core.enums import (
    RESERVATION_ACTIONS_FILTER,
    AlertLevel,
    ExportFormat,
    HealthStatus,
    LogAction,
    LogLevel,
    SortOrder,
)
from parking_logs.core.errors import InvalidFilter
from parking_logs.models.audit_log import AuditLogOut
from parking_logs.models.common import ParkingBaseModel, to_naive_utc

ACTION_FILTER_VALUES = frozenset(a.value for a in LogAction) | {RESERVATION_ACTIONS_FILTER}

SortField = Literal["createdAt", "level", "action", "userId", "resource", "resourceId", "message"]


class Actor(ParkingBaseModel):
    """Authenticated administrator as forwarded by the auth layer."""

    user_id: str = Field(..., alias="userId")
    email: Optional[str] = None
    role: str


# -------------------------
# Requests (INPUT)
# -------------------------

class LogFilters(ParkingBaseModel):
    level: Optional[LogLevel] = None
    action: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    resource: Optional[str] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    ip: Optional[str] = None
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    search: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def drop_blank(cls, values):
        # query strings arrive as "" when a filter box is left empty
        if isinstance(values, dict):
            return {
                k: v for k, v in values.items()
                if v is not None and not (isinstance(v, str) and not v.strip())
            }
        return values

    @field_validator("action")
    @classmethod
    def known_action(cls, v):
        if v is None:
            return v
        if v not in ACTION_FILTER_VALUES:
            raise ValueError(
                f"action must be one of the logged actions or '{RESERVATION_ACTIONS_FILTER}'"
            )
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def as_naive_utc(cls, v):
        return to_naive_utc(v) if v is not None else v

    @model_validator(mode="after")
    def ordered_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self

    @classmethod
    def parse(cls, data: Dict[str, Any]):
        """Validate raw input, raising InvalidFilter naming the offending field."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            err = exc.errors()[0]
            loc = [str(p) for p in err.get("loc", ())]
            field = loc[0] if loc else "endDate"
            raise InvalidFilter(field, f"{field}: {err['msg']}") from None


class LogsQuery(LogFilters):
    sort_by: SortField = Field(default="createdAt", alias="sortBy")
    sort_order: SortOrder = Field(default=SortOrder.desc, alias="sortOrder")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default_factory=lambda: get_settings().default_page_size, ge=1, alias="pageSize")

    @field_validator("sort_order", mode="before")
    @classmethod
    def lower_order(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("page_size")
    @classmethod
    def page_size_ceiling(cls, v: int) -> int:
        ceiling = get_settings().max_page_size
        if v > ceiling:
            raise ValueError(f"pageSize must not exceed {ceiling}")
        return v


class ExportRequest(LogFilters):
    format: Optional[ExportFormat] = None
    max_records: int = Field(
        default_factory=lambda: get_settings().export_default_records,
        ge=1,
        alias="maxRecords",
    )

    @field_validator("max_records")
    @classmethod
    def clamp_to_ceiling(cls, v: int) -> int:
        return min(v, get_settings().export_max_records)

    @classmethod
    def parse(cls, data: Dict[str, Any]):
        if not data.get("format"):
            raise InvalidFilter("format", "format is required (csv, json or excel)")
        return super().parse(data)


# -------------------------
# Responses (OUTPUT)
# -------------------------

class Pagination(ParkingBaseModel):
    total: int
    page: int
    page_size: int = Field(..., alias="pageSize")
    total_pages: int = Field(..., alias="totalPages")
    has_next: bool = Field(..., alias="hasNext")
    has_previous: bool = Field(..., alias="hasPrevious")


class DateRange(ParkingBaseModel):
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


class LogsSummary(ParkingBaseModel):
    error_count: int = Field(0, alias="errorCount")
    warn_count: int = Field(0, alias="warnCount")
    info_count: int = Field(0, alias="infoCount")
    debug_count: int = Field(0, alias="debugCount")
    unique_users: int = Field(0, alias="uniqueUsers")
    date_range: DateRange = Field(default_factory=DateRange, alias="dateRange")


class LogsPage(ParkingBaseModel):
    events: List[AuditLogOut]
    pagination: Pagination
    summary: LogsSummary


class LevelCounts(ParkingBaseModel):
    error: int = 0
    warn: int = 0
    info: int = 0
    debug: int = 0


class DailyStatistics(ParkingBaseModel):
    date: str
    total_count: int = Field(..., alias="totalCount")
    counts_by_level: LevelCounts = Field(..., alias="countsByLevel")


class CriticalEvents(ParkingBaseModel):
    events: List[AuditLogOut]
    count: int
    window_hours: int = Field(..., alias="windowHours")
    alert_level: AlertLevel = Field(..., alias="alertLevel")


class HealthReport(ParkingBaseModel):
    status: HealthStatus
    events_last_hour: int = Field(..., alias="eventsLastHour")
    critical_events_last_hour: int = Field(..., alias="criticalEventsLastHour")
    alert_level: AlertLevel = Field(..., alias="alertLevel")
    last_event_at: Optional[datetime] = Field(default=None, alias="lastEventAt")
    recommendations: List[str] = Field(default_factory=list)
    checked_at: datetime = Field(..., alias="checkedAt")
    performed_by: str = Field(..., alias="performedBy")


class PurgeResult(ParkingBaseModel):
    deleted: int
    age_threshold_days: int = Field(..., alias="ageThresholdDays")
    cutoff: datetime
