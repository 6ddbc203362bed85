"""
Pooled async Redis connection for one endpoint.

The relay opens one for the store (and reuses it for the channel when both
live on the same endpoint); the listener opens one for the channel.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, ConnectionError

from posprint.config import RedisConfig
from posprint.domain.ports import ConfigurationError


logger = logging.getLogger(__name__)


def mask_url(url: str) -> str:
    """Hide credentials in a redis:// URL before it reaches the logs."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


class RedisClient:
    """
    Owns the connection pool for one endpoint.

    A client that serves blocking stream reads is told the read block time,
    and refuses a socket timeout that would cut those reads short.
    """

    def __init__(
        self,
        url: str,
        settings: Optional[RedisConfig] = None,
        read_block_ms: Optional[int] = None
    ):
        settings = settings or RedisConfig()
        if read_block_ms is not None and settings.socket_timeout * 1000 <= read_block_ms:
            raise ConfigurationError(
                f"Redis socket_timeout ({settings.socket_timeout}s) must exceed "
                f"the channel read block time ({read_block_ms}ms)"
            )

        self.url = url
        self.settings = settings
        self.read_block_ms = read_block_ms
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    @property
    def safe_url(self) -> str:
        return mask_url(self.url)

    async def connect(self) -> None:
        """
        Build the pool and check the endpoint answers.

        Raises:
            ConnectionError: If the endpoint cannot be reached
        """
        self._pool = redis.ConnectionPool.from_url(
            self.url,
            max_connections=self.settings.max_connections,
            socket_timeout=self.settings.socket_timeout,
            socket_connect_timeout=self.settings.socket_connect_timeout,
            health_check_interval=self.settings.health_check_interval
        )
        self._client = redis.Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            logger.error(
                f"Failed to connect to Redis at {self.safe_url}: {e}",
                extra={"component": "redis_client"}
            )
            await self.close()
            raise ConnectionError(f"Redis connection failed: {e}") from e

        logger.info(
            f"Connected to Redis: {self.safe_url}",
            extra={"component": "redis_client", "read_block_ms": self.read_block_ms}
        )

    async def reconnect(self) -> None:
        """
        Drop every pooled socket and check the endpoint answers again.
        Used after a transport error, when pooled sockets may be half-dead.

        Raises:
            ConnectionError, TimeoutError, OSError: If the endpoint is still unreachable
        """
        client = self.client
        if self._pool is not None:
            await self._pool.disconnect(inuse_connections=True)
        await client.ping()
        logger.info(f"Reconnected to Redis: {self.safe_url}", extra={"component": "redis_client"})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None

        logger.info("Redis connection closed", extra={"component": "redis_client"})

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def ping(self, timeout: Optional[float] = None) -> bool:
        """True when the endpoint answers within timeout (default: the connect timeout)."""
        if self._client is None:
            return False

        timeout = timeout if timeout is not None else self.settings.socket_connect_timeout
        try:
            await asyncio.wait_for(self._client.ping(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Redis ping timed out after {timeout}s",
                extra={"component": "redis_client"}
            )
            return False
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}", extra={"component": "redis_client"})
            return False
