"""
Filtered, paginated reads over the logs collection.

Pagination is offset based (skip = (page - 1) * pageSize) and is not a
snapshot: an insert landing between two page fetches can shift a row across
the page boundary. Ordering is always total, every sort ends on _id.
"""

import asyncio
import logging
import math
import re
from typing import List, Tuple

from pymongo import ASCENDING, DESCENDING

from parking_logs.core.enums import RESERVATION_ACTIONS, RESERVATION_ACTIONS_FILTER, LogLevel, SortOrder
from parking_logs.core.errors import QueryFailed
from parking_logs.models.audit_log import AuditLogOut
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.schemas.audit import (
    Actor,
    DateRange,
    LogFilters,
    LogsPage,
    LogsQuery,
    LogsSummary,
    Pagination,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "message",
    "details.error",
    "details.reason",
    "context.userAgent",
    "userId",
    "resourceId",
)


def build_filter(filters: LogFilters, exclude_self_audit: bool = False) -> dict:
    """
    Translate validated filters into a Mongo predicate.

    Free-text search and the self-audit exclusion only apply when no explicit
    action filter was given.
    """
    query: dict = {}

    if filters.level:
        query["level"] = filters.level

    if filters.action == RESERVATION_ACTIONS_FILTER:
        query["action"] = {"$in": [a.value for a in RESERVATION_ACTIONS]}
    elif filters.action:
        query["action"] = filters.action

    if filters.user_id:
        query["userId"] = filters.user_id
    if filters.resource:
        query["resource"] = filters.resource
    if filters.resource_id:
        query["resourceId"] = filters.resource_id
    if filters.ip:
        query["context.ip"] = filters.ip

    if filters.start_date or filters.end_date:
        query["createdAt"] = {}
        if filters.start_date:
            query["createdAt"]["$gte"] = filters.start_date
        if filters.end_date:
            query["createdAt"]["$lte"] = filters.end_date

    if filters.search and not filters.action:
        pattern = re.escape(filters.search.strip())
        query["$or"] = [
            {field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS
        ]

    if exclude_self_audit and not filters.action:
        query["context.selfAudit"] = {"$ne": True}

    return query


def build_sort(query: LogsQuery) -> List[Tuple[str, int]]:
    direction = ASCENDING if query.sort_order == SortOrder.asc.value else DESCENDING
    if query.sort_by == "createdAt":
        return [("createdAt", direction), ("_id", direction)]
    return [(query.sort_by, direction), ("createdAt", DESCENDING), ("_id", DESCENDING)]


def build_pagination(total: int, page: int, page_size: int) -> Pagination:
    total_pages = math.ceil(total / page_size) if total else 0
    return Pagination(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


class LogsQueryService:
    def __init__(self, repo: AuditRepository):
        self.repo = repo

    async def query(self, filters: LogsQuery, actor: Actor, exclude_self_audit: bool = False) -> LogsPage:
        """
        One page of events plus pagination metadata and a summary.

        The summary is computed over the whole filtered set, not the page.
        exclude_self_audit hides the records written for administrators
        viewing the logs; it is never exposed as a public filter.
        """
        applied = filters.model_dump(by_alias=True, exclude_none=True, mode="json")
        logger.info("Administrator %s querying logs with filters %s", actor.user_id, applied)

        mongo_filter = build_filter(filters, exclude_self_audit=exclude_self_audit)
        sort = build_sort(filters)
        skip = (filters.page - 1) * filters.page_size
        logger.debug("Logs query built: %s sort=%s skip=%s", mongo_filter, sort, skip)

        try:
            docs, total, summary = await asyncio.gather(
                self.repo.find_page(mongo_filter, sort, skip, filters.page_size),
                self.repo.count(mongo_filter),
                self.summarize(mongo_filter),
            )
        except Exception as exc:
            logger.error("Logs query failed: %r", exc, exc_info=True)
            raise QueryFailed() from exc

        events = [AuditLogOut.from_document(d) for d in docs]
        logger.info("Logs query completed: %s of %s events", len(events), total)

        return LogsPage(
            events=events,
            pagination=build_pagination(total, filters.page, filters.page_size),
            summary=summary,
        )

    async def summarize(self, mongo_filter: dict) -> LogsSummary:
        by_level, unique_users, (oldest, newest) = await asyncio.gather(
            self.repo.count_by_level(mongo_filter),
            self.repo.distinct_users(mongo_filter),
            self.repo.date_range(mongo_filter),
        )
        return LogsSummary(
            error_count=by_level.get(LogLevel.error.value, 0),
            warn_count=by_level.get(LogLevel.warn.value, 0),
            info_count=by_level.get(LogLevel.info.value, 0),
            debug_count=by_level.get(LogLevel.debug.value, 0),
            unique_users=unique_users,
            date_range=DateRange(oldest=oldest, newest=newest),
        )
