"""
Data access for the logs collection.

Reads retry once, after a short fixed pause, on the transient driver errors
(connection reset, timeouts, failover). Everything else propagates untouched.
Writes are never retried.
"""

import logging
from datetime import datetime
from functools import wraps
from typing import Dict, List, Optional, Sequence, Tuple

from pymongo import DESCENDING
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    ExecutionTimeout,
    NetworkTimeout,
    ServerSelectionTimeoutError,
)
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from parking_logs.core.config import get_settings
from parking_logs.db.mongo import LOG_INDEXES

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    AutoReconnect,
    NetworkTimeout,
    ConnectionFailure,
    ExecutionTimeout,
    ServerSelectionTimeoutError,
)

READ_ATTEMPTS = 2

SortSpec = Sequence[Tuple[str, int]]

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def _log_retry(retry_state: RetryCallState) -> None:
    fn_name = getattr(retry_state.fn, "__name__", "unknown")
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient store error in %s (attempt %s), retrying: %r",
        fn_name,
        retry_state.attempt_number,
        exc,
    )


def with_read_retry(func):
    """Retry a repository read once on a transient store error."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        # built per call so the backoff follows the current settings
        decorator = retry(
            stop=stop_after_attempt(READ_ATTEMPTS),
            wait=wait_fixed(get_settings().retry_backoff_seconds),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await decorator(func)(*args, **kwargs)

    return wrapper


class AuditRepository:
    def __init__(self, collection):
        self.collection = collection

    async def ensure_indexes(self):
        for keys, name in LOG_INDEXES:
            await self.collection.create_index(keys, name=name)

    async def insert(self, doc: dict):
        doc = {k: v for k, v in doc.items() if k not in ("_id", "id")}
        res = await self.collection.insert_one(doc)
        return res.inserted_id

    @with_read_retry
    async def find_page(self, filt: dict, sort: SortSpec, skip: int = 0, limit: int = 0) -> List[dict]:
        cursor = self.collection.find(filt).sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit or None)

    async def find_recent(self, filt: dict, limit: int) -> List[dict]:
        """Newest first, ties on _id."""
        return await self.find_page(filt, NEWEST_FIRST, 0, limit)

    async def find_for_export(self, filt: dict, limit: int) -> List[dict]:
        return await self.find_page(filt, NEWEST_FIRST, 0, limit)

    @with_read_retry
    async def count(self, filt: dict) -> int:
        return await self.collection.count_documents(filt)

    @with_read_retry
    async def count_by_level(self, filt: dict) -> Dict[str, int]:
        pipeline = [
            {"$match": filt},
            {"$group": {"_id": "$level", "count": {"$sum": 1}}},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=None)
        return {r["_id"]: r["count"] for r in rows}

    @with_read_retry
    async def distinct_users(self, filt: dict) -> int:
        users = await self.collection.distinct("userId", filt)
        return len([u for u in users if u is not None])

    @with_read_retry
    async def date_range(self, filt: dict) -> Tuple[Optional[datetime], Optional[datetime]]:
        pipeline = [
            {"$match": filt},
            {"$group": {
                "_id": None,
                "oldest": {"$min": "$createdAt"},
                "newest": {"$max": "$createdAt"},
            }},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=1)
        if not rows:
            return None, None
        return rows[0].get("oldest"), rows[0].get("newest")

    @with_read_retry
    async def daily_level_counts(self, since: datetime, until: datetime) -> List[dict]:
        """Rows of {"_id": {year, month, day, level}, "count": n} for the window."""
        pipeline = [
            {"$match": {"createdAt": {"$gte": since, "$lte": until}}},
            {"$group": {
                "_id": {
                    "year": {"$year": "$createdAt"},
                    "month": {"$month": "$createdAt"},
                    "day": {"$dayOfMonth": "$createdAt"},
                    "level": "$level",
                },
                "count": {"$sum": 1},
            }},
        ]
        return await self.collection.aggregate(pipeline).to_list(length=None)

    async def delete_older_than(self, cutoff: datetime) -> int:
        res = await self.collection.delete_many({"createdAt": {"$lt": cutoff}})
        return res.deleted_count
