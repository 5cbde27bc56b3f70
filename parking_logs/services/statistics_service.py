import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List

from parking_logs.core.config import get_settings
from parking_logs.core.enums import AlertLevel, HealthStatus, LogLevel
from parking_logs.core.errors import InvalidFilter, QueryFailed
from parking_logs.models.audit_log import AuditLogOut
from parking_logs.models.common import utcnow
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.schemas.audit import (
    Actor,
    CriticalEvents,
    DailyStatistics,
    HealthReport,
    LevelCounts,
    PurgeResult,
)

logger = logging.getLogger(__name__)

MAX_DAYS_BACK = 365
MAX_WINDOW_HOURS = 168

# (count strictly above, level), checked in order
ALERT_THRESHOLDS = (
    (50, AlertLevel.HIGH),
    (10, AlertLevel.MEDIUM),
)

def alert_level(critical_count: int) -> AlertLevel:
    for threshold, level in ALERT_THRESHOLDS:
        if critical_count > threshold:
            return level
    return AlertLevel.LOW


def health_status(alert: AlertLevel, events_last_hour: int) -> HealthStatus:
    if alert == AlertLevel.HIGH:
        return HealthStatus.critical
    if alert == AlertLevel.MEDIUM or events_last_hour == 0:
        return HealthStatus.warning
    return HealthStatus.healthy


def health_recommendations(status: HealthStatus, events_last_hour: int, critical_count: int) -> List[str]:
    recommendations = []

    if status == HealthStatus.critical:
        recommendations.append("System in critical state: review error events immediately")
        recommendations.append("Analyse error logs and take corrective action")

    if status == HealthStatus.warning:
        if critical_count > ALERT_THRESHOLDS[-1][0]:
            recommendations.append("High number of critical events: monitor closely")
        if events_last_hour == 0:
            recommendations.append("No recent events: check that audit logging is working")

    if critical_count > 0:
        recommendations.append("Review the critical events view")

    if not recommendations:
        recommendations.append("System working normally")

    return recommendations


def _check_range(field: str, value: int, upper: int) -> None:
    if value < 1 or value > upper:
        raise InvalidFilter(field, f"{field} must be between 1 and {upper}")


class StatisticsService:
    def __init__(self, repo: AuditRepository):
        self.repo = repo

    async def statistics_by_day(self, days_back: int, actor: Actor) -> List[DailyStatistics]:
        """Per-day event counts, split by level, oldest day first."""
        _check_range("daysBack", days_back, MAX_DAYS_BACK)
        logger.info("Administrator %s requesting statistics for %s days", actor.user_id, days_back)

        until = utcnow()
        since = until - timedelta(days=days_back)
        try:
            rows = await self.repo.daily_level_counts(since, until)
        except Exception as exc:
            logger.error("Statistics query failed: %r", exc, exc_info=True)
            raise QueryFailed("could not complete statistics query") from exc

        days: Dict[str, Dict[str, int]] = defaultdict(dict)
        for row in rows:
            key = row["_id"]
            date = f"{key['year']:04d}-{key['month']:02d}-{key['day']:02d}"
            days[date][key["level"]] = row["count"]

        known = {level.value for level in LogLevel}
        out = []
        for date in sorted(days):
            counts = {lvl: n for lvl, n in days[date].items() if lvl in known}
            out.append(DailyStatistics(
                date=date,
                total_count=sum(counts.values()),
                counts_by_level=LevelCounts(**counts),
            ))

        return out

    async def recent_critical(self, window_hours: int, actor: Actor) -> CriticalEvents:
        """Newest error-level events in the trailing window, capped."""
        _check_range("windowHours", window_hours, MAX_WINDOW_HOURS)
        logger.info("Administrator %s requesting critical events of the last %s hours",
                    actor.user_id, window_hours)

        events = await self._critical_events(window_hours)
        alert = alert_level(len(events))

        return CriticalEvents(
            events=events,
            count=len(events),
            window_hours=window_hours,
            alert_level=alert,
        )

    async def health(self, actor: Actor) -> HealthReport:
        now = utcnow()
        last_hour = {"createdAt": {"$gte": now - timedelta(hours=1)}}
        try:
            events_last_hour = await self.repo.count(last_hour)
            latest = await self.repo.find_recent(last_hour, 1)
        except Exception as exc:
            logger.error("Health check query failed: %r", exc, exc_info=True)
            raise QueryFailed("could not complete health check") from exc

        critical = await self._critical_events(1)
        alert = alert_level(len(critical))
        status = health_status(alert, events_last_hour)

        return HealthReport(
            status=status,
            events_last_hour=events_last_hour,
            critical_events_last_hour=len(critical),
            alert_level=alert,
            last_event_at=latest[0]["createdAt"] if latest else None,
            recommendations=health_recommendations(status, events_last_hour, len(critical)),
            checked_at=now,
            performed_by=actor.user_id,
        )

    async def purge(self, age_threshold_days: int, actor: Actor) -> PurgeResult:
        """Retention sweep: remove every event older than the threshold."""
        if age_threshold_days < 1:
            raise InvalidFilter("ageThresholdDays", "ageThresholdDays must be at least 1")

        cutoff = utcnow() - timedelta(days=age_threshold_days)
        try:
            deleted = await self.repo.delete_older_than(cutoff)
        except Exception as exc:
            logger.error("Retention sweep failed: %r", exc, exc_info=True)
            raise QueryFailed("could not complete cleanup") from exc

        logger.warning("Administrator %s removed %s events older than %s",
                       actor.user_id, deleted, cutoff.isoformat())
        return PurgeResult(deleted=deleted, age_threshold_days=age_threshold_days, cutoff=cutoff)

    async def _critical_events(self, window_hours: int) -> List[AuditLogOut]:
        since = utcnow() - timedelta(hours=window_hours)
        try:
            docs = await self.repo.find_recent(
                {"level": LogLevel.error.value, "createdAt": {"$gte": since}},
                get_settings().critical_events_limit,
            )
        except Exception as exc:
            logger.error("Critical events query failed: %r", exc, exc_info=True)
            raise QueryFailed("could not complete critical events query") from exc
        return [AuditLogOut.from_document(d) for d in docs]
