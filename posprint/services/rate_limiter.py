"""
Sliding-window rate limiter keyed by origin identifier.

The check is advisory: concurrent submissions from one origin can each pass
before either is stored, so the limit can be exceeded by a small margin.
"""

import logging
from datetime import datetime, timedelta

from posprint.domain.ports import MessageStore, PersistenceError, RateLimitCheckError
from posprint.domain.schema import RateLimitDecision


logger = logging.getLogger(__name__)


class RateLimiter:
    """Counts an origin's stored messages in [now - window_hours, now]."""

    def __init__(self, store: MessageStore, max_messages: int = 10, window_hours: int = 24):
        if max_messages < 1 or window_hours < 1:
            raise ValueError("max_messages and window_hours must be positive")

        self.store = store
        self.max_messages = max_messages
        self.window_hours = window_hours

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)

    async def count(self, origin_id: str, window_start: datetime, window_end: datetime) -> int:
        """
        Number of messages from origin_id with window_start <= receivedAt <= window_end.

        Raises:
            RateLimitCheckError: If the store lookup fails
        """
        try:
            count = await self.store.query_by_origin_and_time(origin_id, window_start, window_end)
        except PersistenceError as e:
            raise RateLimitCheckError(str(e)) from e
        return max(int(count), 0)

    async def check(self, origin_id: str, now: datetime) -> RateLimitDecision:
        window_start = now - self.window
        count = await self.count(origin_id, window_start, now)
        decision = RateLimitDecision(
            allowed=count < self.max_messages,
            count=count,
            limit=self.max_messages,
            window_start=window_start,
            window_end=now
        )

        if not decision.allowed:
            logger.info(
                "Rate limit reached",
                extra={
                    "component": "rate_limiter",
                    "source_ip": origin_id,
                    "count": count,
                    "limit": self.max_messages,
                    "window_hours": self.window_hours
                }
            )
        return decision
