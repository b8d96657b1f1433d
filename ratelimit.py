"""
Fixed-window request budget per client IP.

Buckets are MongoDB documents keyed by client and window start, expired by a
TTL index on `expiresAt`, so counts are shared by every API instance and
survive restarts.
"""
import logging
import math
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from pymongo import ReturnDocument

from config import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS
from database import db

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, collection, limit: int, window_seconds: int):
        self.collection = collection
        self.limit = limit
        self.window_seconds = window_seconds

    def hit(self, key: str, now: Optional[float] = None) -> Tuple[bool, int]:
        """Count one request for `key`. Returns (allowed, seconds until the window resets)."""
        now = time.time() if now is None else now
        window_start = int(now // self.window_seconds) * self.window_seconds
        window_end = window_start + self.window_seconds
        bucket = self.collection.find_one_and_update(
            {"_id": f"{key}:{window_start}"},
            {
                "$inc": {"count": 1},
                "$setOnInsert": {"expiresAt": datetime.fromtimestamp(window_end, tz=timezone.utc)},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        allowed = bucket["count"] <= self.limit
        if not allowed:
            logger.warning("Rate limit exceeded for %s", key)
        return allowed, max(1, math.ceil(window_end - now))


def client_ip(request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_limiter() -> Optional[RateLimiter]:
    if RATE_LIMIT_MAX <= 0 or db is None:
        return None
    return RateLimiter(db["ratelimit"], RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS)
