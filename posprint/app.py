"""
Main application module for the posprint HTTP relay.
Composes the store, rate limiter, publisher and API and manages their lifecycle.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn

from posprint import __version__
from posprint.config import load_config, resolve_channel_endpoint, AppConfig
from posprint.domain.ports import MessageStore
from posprint.telemetry.logger import setup_logging
from posprint.infra.redis_client import RedisClient
from posprint.infra.redis_store import RedisMessageStore
from posprint.infra.memory_store import InMemoryMessageStore
from posprint.infra.stream_publisher import RedisStreamPublisher
from posprint.services.rate_limiter import RateLimiter
from posprint.services.ingestion_service import IngestionService
from posprint.api.http_server import RelayAPI


logger = logging.getLogger(__name__)


class RelayApiService:
    """
    Ingestion process: one HTTP server in front of the store and the channel.
    """

    def __init__(self, config: AppConfig):
        self.config = config

        self.store_client: Optional[RedisClient] = None
        self.channel_client: Optional[RedisClient] = None
        self.store: Optional[MessageStore] = None
        self.publisher: Optional[RedisStreamPublisher] = None
        self.ingestion_service: Optional[IngestionService] = None
        self.api: Optional[RelayAPI] = None

    def _redis_client(self, url: str) -> RedisClient:
        return RedisClient(url=url, settings=self.config.redis)

    async def setup(self) -> None:
        """
        Setup all service dependencies.

        Raises:
            ConfigurationError: If the channel endpoint is missing
            Exception: If a connection cannot be established
        """
        try:
            logger.info("Setting up posprint relay service")

            channel_url = resolve_channel_endpoint(self.config)

            if self.config.store.backend == "memory":
                logger.warning(
                    "Using in-memory message store, records are lost on restart",
                    extra={"component": "app"}
                )
                self.store = InMemoryMessageStore()
            else:
                self.store_client = self._redis_client(self.config.redis.url)
                await self.store_client.connect()
                self.store = RedisMessageStore(
                    redis_client=self.store_client,
                    table_name=self.config.store.table_name,
                    index_name=self.config.store.index_name,
                    retention_seconds=self.config.store.retention_seconds
                )

            if self.store_client is not None and channel_url == self.config.redis.url:
                self.channel_client = self.store_client
            else:
                self.channel_client = self._redis_client(channel_url)
                await self.channel_client.connect()

            self.publisher = RedisStreamPublisher(
                redis_client=self.channel_client,
                default_channel=self.config.channel.topic,
                maxlen_approx=self.config.channel.maxlen_approx
            )

            self.ingestion_service = IngestionService(
                store=self.store,
                rate_limiter=RateLimiter(
                    self.store,
                    max_messages=self.config.rate_limit.max_messages,
                    window_hours=self.config.rate_limit.window_hours
                ),
                publisher=self.publisher,
                channel=self.config.channel.topic
            )

            self.api = RelayAPI(
                ingestion_service=self.ingestion_service,
                title="posprint relay",
                version=__version__
            )

            logger.info(
                "Service setup completed successfully",
                extra={
                    "component": "app",
                    "store_backend": self.config.store.backend,
                    "channel_topic": self.config.channel.topic
                }
            )

        except Exception as e:
            logger.error(f"Service setup failed: {e}")
            await self.cleanup()
            raise

    async def cleanup(self) -> None:
        """Cleanup service resources."""
        logger.info("Cleaning up service resources")

        try:
            if self.channel_client and self.channel_client is not self.store_client:
                await self.channel_client.close()
            if self.store_client:
                await self.store_client.close()

            logger.info("Service cleanup completed")

        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    async def run(self) -> None:
        """Serve HTTP until uvicorn receives a shutdown signal."""
        if not self.api:
            raise RuntimeError("Service not setup. Call setup() first.")

        logger.info(
            f"Starting posprint relay on {self.config.server.host}:{self.config.server.port}"
        )

        server_config = uvicorn.Config(
            app=self.api.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.server.log_level,
            workers=1,
            access_log=True
        )
        server = uvicorn.Server(server_config)

        try:
            await server.serve()
        except Exception as e:
            logger.error(f"Server error: {e}")
            raise

    @asynccontextmanager
    async def lifespan(self):
        try:
            await self.setup()
            yield self
        finally:
            await self.cleanup()


async def main() -> None:
    """Main entry point for the relay API."""
    try:
        config = load_config()
        setup_logging(
            level=config.logging.level,
            service_name="posprint-api",
            enable_json=config.logging.json_format,
            enable_correlation=config.logging.enable_correlation
        )

        async with RelayApiService(config).lifespan() as service:
            await service.run()

    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
