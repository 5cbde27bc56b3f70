from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from parking_logs.api.deps import (
    get_export_service,
    get_logs_query_service,
    get_statistics_service,
)
from parking_logs.core.errors import InvalidFilter
from parking_logs.core.security import get_current_admin
from parking_logs.middleware.audit_capture import RESULT_COUNT_HEADER
from parking_logs.schemas.audit import (
    Actor,
    CriticalEvents,
    DailyStatistics,
    ExportRequest,
    HealthReport,
    LogsPage,
    LogsQuery,
    PurgeResult,
)
from parking_logs.services.export_service import ExportService
from parking_logs.services.logs_query_service import LogsQueryService
from parking_logs.services.statistics_service import StatisticsService

router = APIRouter(prefix="/admin/logs", tags=["Admin - Logs"])


def _filter_params(
    level: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = Query(None, alias="userId"),
    resource: Optional[str] = None,
    resource_id: Optional[str] = Query(None, alias="resourceId"),
    ip: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    search: Optional[str] = None,
) -> dict:
    # validated by the schemas, so errors name the offending field
    return {
        "level": level,
        "action": action,
        "userId": user_id,
        "resource": resource,
        "resourceId": resource_id,
        "ip": ip,
        "startDate": start_date,
        "endDate": end_date,
        "search": search,
    }


def _parse_int(field: str, value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidFilter(field, f"{field} must be an integer") from None


# ========================
# LIST / FILTER
# ========================
@router.get("", response_model=LogsPage)
async def list_logs(
    response: Response,
    filters: dict = Depends(_filter_params),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    page: Optional[str] = None,
    page_size: Optional[str] = Query(None, alias="pageSize"),
    actor: Actor = Depends(get_current_admin),
    service: LogsQueryService = Depends(get_logs_query_service),
):
    query = LogsQuery.parse({
        **filters,
        "sortBy": sort_by,
        "sortOrder": sort_order,
        "page": page,
        "pageSize": page_size,
    })
    result = await service.query(query, actor, exclude_self_audit=True)
    response.headers[RESULT_COUNT_HEADER] = str(len(result.events))
    return result


# ========================
# STATISTICS
# ========================
@router.get("/statistics", response_model=List[DailyStatistics])
async def log_statistics(
    response: Response,
    days_back: Optional[str] = Query(None, alias="daysBack"),
    actor: Actor = Depends(get_current_admin),
    service: StatisticsService = Depends(get_statistics_service),
):
    stats = await service.statistics_by_day(_parse_int("daysBack", days_back, 30), actor)
    response.headers[RESULT_COUNT_HEADER] = str(len(stats))
    return stats


# ========================
# CRITICAL EVENTS
# ========================
@router.get("/critical", response_model=CriticalEvents)
async def critical_events(
    response: Response,
    window_hours: Optional[str] = Query(None, alias="windowHours"),
    actor: Actor = Depends(get_current_admin),
    service: StatisticsService = Depends(get_statistics_service),
):
    result = await service.recent_critical(_parse_int("windowHours", window_hours, 24), actor)
    response.headers[RESULT_COUNT_HEADER] = str(result.count)
    return result


# ========================
# HEALTH
# ========================
@router.get("/health", response_model=HealthReport)
async def logs_health(
    actor: Actor = Depends(get_current_admin),
    service: StatisticsService = Depends(get_statistics_service),
):
    return await service.health(actor)


# ========================
# EXPORT
# ========================
@router.get("/export")
async def export_logs(
    filters: dict = Depends(_filter_params),
    format: Optional[str] = None,
    max_records: Optional[str] = Query(None, alias="maxRecords"),
    actor: Actor = Depends(get_current_admin),
    service: ExportService = Depends(get_export_service),
):
    data = {**filters, "format": format}
    if max_records not in (None, ""):
        data["maxRecords"] = _parse_int("maxRecords", max_records, 0)
    request = ExportRequest.parse(data)

    result = await service.export(request, actor)
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            RESULT_COUNT_HEADER: str(result.record_count),
        },
    )


# ========================
# RETENTION SWEEP
# ========================
@router.delete("/cleanup", response_model=PurgeResult)
async def cleanup_logs(
    response: Response,
    age_threshold_days: Optional[str] = Query(None, alias="ageThresholdDays"),
    actor: Actor = Depends(get_current_admin),
    service: StatisticsService = Depends(get_statistics_service),
):
    if age_threshold_days in (None, ""):
        raise InvalidFilter("ageThresholdDays", "ageThresholdDays is required")
    result = await service.purge(_parse_int("ageThresholdDays", age_threshold_days, 0), actor)
    response.headers[RESULT_COUNT_HEADER] = str(result.deleted)
    return result
