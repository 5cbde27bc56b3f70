from fastapi import Depends, Request

from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.services.audit_service import AuditService
from parking_logs.services.export_service import ExportService
from parking_logs.services.logs_query_service import LogsQueryService
from parking_logs.services.statistics_service import StatisticsService


def get_audit_service(request: Request) -> AuditService:
    """The process-wide ingestion service, created when the app starts."""
    return request.app.state.audit_service


def get_audit_repository(audit: AuditService = Depends(get_audit_service)) -> AuditRepository:
    return audit.repo


# reads only; access to these routes is recorded by AuditCaptureMiddleware
def get_logs_query_service(repo: AuditRepository = Depends(get_audit_repository)) -> LogsQueryService:
    return LogsQueryService(repo)


def get_statistics_service(repo: AuditRepository = Depends(get_audit_repository)) -> StatisticsService:
    return StatisticsService(repo)


def get_export_service(repo: AuditRepository = Depends(get_audit_repository)) -> ExportService:
    return ExportService(repo)
