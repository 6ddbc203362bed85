"""
Redis implementation of the MessageStore interface.

Layout:
    {table}:{messageId}             JSON record, written once with SET NX
    {table}:{index}:{sourceIp}      sorted set, member=messageId, score=receivedAt (epoch ms)
"""

import json
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from redis.exceptions import RedisError

from posprint.domain.ports import MessageStore, PersistenceError
from posprint.domain.schema import Message, HealthStatus
from .redis_client import RedisClient


logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Exact integer epoch milliseconds, used as the index score."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


class RedisMessageStore(MessageStore):
    """
    Message store backed by Redis.
    Record and index entry are written in one MULTI/EXEC transaction.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        table_name: str = "posprint:messages",
        index_name: str = "by-source-ip",
        retention_seconds: Optional[int] = None
    ):
        """
        Initialize Redis message store.

        Args:
            redis_client: Redis client instance
            table_name: Key prefix for message records
            index_name: Name of the per-origin time index
            retention_seconds: Optional TTL for records and index keys
        """
        self.redis_client = redis_client
        self.table_name = table_name
        self.index_name = index_name
        self.retention_seconds = retention_seconds

    def record_key(self, message_id: str) -> str:
        return f"{self.table_name}:{message_id}"

    def index_key(self, origin_id: str) -> str:
        return f"{self.table_name}:{self.index_name}:{origin_id}"

    async def put(self, message: Message) -> None:
        record_key = self.record_key(message.message_id)
        index_key = self.index_key(message.source_ip)
        score = to_epoch_ms(message.received_at_datetime)

        try:
            async with self.redis_client.client.pipeline(transaction=True) as pipe:
                pipe.set(
                    record_key,
                    json.dumps(message.to_record()),
                    nx=True,
                    ex=self.retention_seconds
                )
                pipe.zadd(index_key, {message.message_id: score}, nx=True)
                if self.retention_seconds:
                    pipe.expire(index_key, self.retention_seconds)
                results = await pipe.execute()

        except RedisError as e:
            logger.error(
                f"Failed to store message: {e}",
                extra={
                    "component": "redis_store",
                    "message_id": message.message_id,
                    "error": str(e)
                }
            )
            raise PersistenceError(f"Redis write failed: {e}") from e

        if not results or not results[0]:
            logger.error(
                "Message id already exists, record not overwritten",
                extra={"component": "redis_store", "message_id": message.message_id}
            )
            raise PersistenceError(f"Duplicate message id: {message.message_id}")

        logger.debug(
            "Message stored",
            extra={
                "component": "redis_store",
                "message_id": message.message_id,
                "source_ip": message.source_ip
            }
        )

    async def query_by_origin_and_time(
        self,
        origin_id: str,
        since: datetime,
        until: Optional[datetime] = None
    ) -> int:
        # Plain numeric bounds are inclusive in ZCOUNT
        min_score = to_epoch_ms(since)
        max_score = to_epoch_ms(until) if until is not None else "+inf"

        try:
            count = await self.redis_client.client.zcount(
                self.index_key(origin_id),
                min_score,
                max_score
            )
        except RedisError as e:
            logger.error(
                f"Failed to query origin index: {e}",
                extra={
                    "component": "redis_store",
                    "source_ip": origin_id,
                    "error": str(e)
                }
            )
            raise PersistenceError(f"Redis query failed: {e}") from e

        return int(count or 0)

    async def check_health(self) -> HealthStatus:
        ping_result = await self.redis_client.ping()
        return HealthStatus(
            status="healthy" if ping_result else "unhealthy",
            checks={"store_ping": "ok" if ping_result else "failed"}
        )
