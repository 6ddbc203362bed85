"""
Process-local MessageStore, for local development and tests.
"""

import bisect
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from posprint.domain.ports import MessageStore, PersistenceError
from posprint.domain.schema import Message, HealthStatus
from .redis_store import to_epoch_ms


logger = logging.getLogger(__name__)


class InMemoryMessageStore(MessageStore):
    """Same contract as RedisMessageStore, kept in dictionaries."""

    def __init__(self):
        self._records: Dict[str, Message] = {}
        self._index: Dict[str, List[int]] = defaultdict(list)

    async def put(self, message: Message) -> None:
        if message.message_id in self._records:
            raise PersistenceError(f"Duplicate message id: {message.message_id}")

        self._records[message.message_id] = message
        bisect.insort(self._index[message.source_ip], to_epoch_ms(message.received_at_datetime))

    async def query_by_origin_and_time(
        self,
        origin_id: str,
        since: datetime,
        until: Optional[datetime] = None
    ) -> int:
        scores = self._index.get(origin_id, [])
        lo = bisect.bisect_left(scores, to_epoch_ms(since))
        hi = len(scores) if until is None else bisect.bisect_right(scores, to_epoch_ms(until))
        return max(hi - lo, 0)

    def __len__(self) -> int:
        return len(self._records)

    async def check_health(self) -> HealthStatus:
        return HealthStatus(status="healthy", checks={"store": f"memory_size_{len(self)}"})
