"""
Redis Streams implementation of the Publisher interface.
Fire-and-forget: one XADD per message, no retry and no delivery receipt.
"""

import logging

from redis.exceptions import RedisError

from posprint.domain.ports import Publisher, PublishError, ConfigurationError
from .redis_client import RedisClient


logger = logging.getLogger(__name__)

PAYLOAD_FIELD = "payload"


class RedisStreamPublisher(Publisher):
    """
    Publishes payload bytes onto a Redis Stream used as the channel.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        default_channel: str,
        maxlen_approx: int = 10_000
    ):
        """
        Initialize stream publisher.

        Args:
            redis_client: Redis client connected to the channel endpoint
            default_channel: Channel name used by the ingestion path
            maxlen_approx: Approximate max length for stream trimming

        Raises:
            ConfigurationError: If the channel name is empty
        """
        if not default_channel or not default_channel.strip():
            raise ConfigurationError("Channel topic is not configured")

        self.redis_client = redis_client
        self.default_channel = default_channel.strip()
        self.maxlen_approx = maxlen_approx

    async def publish(self, channel: str, payload: bytes) -> str:
        if not channel:
            raise ConfigurationError("Empty channel name")

        try:
            entry_id = await self.redis_client.client.xadd(
                channel,
                {PAYLOAD_FIELD: payload},
                maxlen=self.maxlen_approx,
                approximate=True
            )
        except (RedisError, RuntimeError) as e:
            logger.error(
                f"Failed to publish to channel: {e}",
                extra={
                    "component": "stream_publisher",
                    "channel": channel,
                    "error": str(e)
                }
            )
            raise PublishError(f"Channel publish failed: {e}") from e

        if isinstance(entry_id, bytes):
            entry_id = entry_id.decode("utf-8")

        logger.debug(
            f"Published to channel: {entry_id}",
            extra={
                "component": "stream_publisher",
                "channel": channel,
                "entry_id": entry_id,
                "payload_bytes": len(payload)
            }
        )
        return entry_id

    async def check_health(self) -> bool:
        return await self.redis_client.ping()
