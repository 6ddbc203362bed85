"""
Main application module for the posprint print listener.
Subscribes to the print channel and prints every received message.
"""

import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager
from typing import Optional

from posprint.config import load_config, resolve_channel_endpoint, AppConfig
from posprint.domain.schema import SubscriberState
from posprint.telemetry.logger import setup_logging, MetricsLogger
from posprint.infra.redis_client import RedisClient
from posprint.infra.stream_subscriber import ChannelSubscriber
from posprint.infra.escpos_device import EscposNetworkDevice
from posprint.printing.formatter import PrintFormatter
from posprint.printing.job_runner import PrintJobRunner
from posprint.services.print_service import PrintService


logger = logging.getLogger(__name__)


class PrintListenerApplication:
    """
    Long-running consumer process: channel subscriber -> print service -> printer.
    """

    def __init__(self, config: AppConfig):
        """
        Initialize application with configuration.

        Args:
            config: Application configuration
        """
        self.config = config

        self.redis_client: Optional[RedisClient] = None
        self.subscriber: Optional[ChannelSubscriber] = None
        self.print_service: Optional[PrintService] = None

        self._shutdown_event = asyncio.Event()
        self.metrics = MetricsLogger("listener")

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            loop.call_soon_threadsafe(self._shutdown_event.set)

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def setup(self) -> None:
        """
        Setup all listener dependencies.

        Raises:
            ConfigurationError: If the channel endpoint is missing
            Exception: If the channel connection cannot be established
        """
        try:
            logger.info("Setting up posprint listener")

            channel_url = resolve_channel_endpoint(self.config)

            self.redis_client = RedisClient(
                url=channel_url,
                settings=self.config.redis,
                read_block_ms=self.config.channel.block_ms
            )
            await self.redis_client.connect()

            printer = self.config.printer
            job_runner = PrintJobRunner(
                device_factory=lambda: EscposNetworkDevice(
                    printer.host,
                    port=printer.port,
                    timeout=printer.timeout
                ),
                feed_lines=printer.feed_lines
            )

            self.print_service = PrintService(
                job_runner=job_runner,
                formatter=PrintFormatter(line_width=printer.line_width),
                queue_size=printer.queue_size
            )

            self.subscriber = ChannelSubscriber(
                redis_client=self.redis_client,
                topic=self.config.channel.topic,
                client_id=self.config.channel.client_id,
                block_ms=self.config.channel.block_ms,
                batch_size=self.config.channel.batch_size,
                reconnect_min_delay=self.config.channel.reconnect_min_delay,
                reconnect_max_delay=self.config.channel.reconnect_max_delay
            )

            logger.info(
                "Listener setup completed",
                extra={
                    "component": "listener",
                    "topic": self.config.channel.topic,
                    "client_id": self.config.channel.client_id,
                    "printer": f"{printer.host}:{printer.port}",
                    "line_width": printer.line_width
                }
            )

        except Exception as e:
            logger.error(f"Listener setup failed: {e}")
            await self.cleanup()
            raise

    async def cleanup(self) -> None:
        """Stop subscribing, let queued jobs finish, then close the connection."""
        logger.info("Cleaning up listener resources")

        try:
            if self.subscriber:
                await self.subscriber.stop()

            if self.print_service:
                await self.print_service.stop(
                    drain_timeout=self.config.printer.drain_timeout_seconds
                )

            if self.redis_client:
                await self.redis_client.close()

            logger.info("Listener cleanup completed")

        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    async def run(self) -> None:
        """Start printing and subscribing, then wait for a shutdown signal."""
        if not self.subscriber or not self.print_service:
            raise RuntimeError("Listener not setup. Call setup() first.")

        self._setup_signal_handlers()

        await self.print_service.start()
        await self.subscriber.start(self.print_service.handle_message)

        logger.info(
            "Listener started, waiting for messages",
            extra={"component": "listener", "topic": self.config.channel.topic}
        )

        await self._wait_for_shutdown()

    async def _wait_for_shutdown(self) -> None:
        while not self._shutdown_event.is_set():
            if self.subscriber.state != SubscriberState.CONNECTED:
                logger.warning(
                    f"Subscriber is {self.subscriber.state.value}",
                    extra={"component": "listener"}
                )

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=30.0)
            except asyncio.TimeoutError:
                self.metrics.logger.info(
                    "Listener stats",
                    extra={
                        "component": "listener",
                        "delivered": self.subscriber.delivered,
                        "printed": self.print_service.printed,
                        "failed": self.print_service.failed,
                        "dropped": self.print_service.dropped,
                        "pending": self.print_service.pending
                    }
                )

        logger.info("Shutdown signal received, stopping listener")

    @asynccontextmanager
    async def lifespan(self):
        try:
            await self.setup()
            yield self
        finally:
            await self.cleanup()


async def main() -> None:
    """Main entry point for the print listener."""
    try:
        config = load_config()
        setup_logging(
            level=config.logging.level,
            service_name="posprint-listener",
            enable_json=config.logging.json_format,
            enable_correlation=config.logging.enable_correlation
        )

        async with PrintListenerApplication(config).lifespan() as app:
            await app.run()

    except KeyboardInterrupt:
        logger.info("Listener interrupted by user")
    except Exception as e:
        logger.error(f"Listener failed: {e}")
        sys.exit(1)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
