"""
Channel subscriber over a Redis Stream consumer group.

States:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> INTERRUPTED -> RECONNECTING -> CONNECTED   (transport loss)
    any -> DISCONNECTED                                    (stop(), terminal)

The consumer group named after the client identity is the persistent
session: entries delivered but not acknowledged stay pending and are read
again (from id 0) after a reconnect, without subscribing again.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    RedisError,
    ResponseError,
)

from posprint.domain.ports import ConfigurationError, SubscriberError
from posprint.domain.schema import SubscriberState
from .redis_client import RedisClient
from .stream_publisher import PAYLOAD_FIELD


logger = logging.getLogger(__name__)

MessageHandler = Callable[[bytes], Awaitable[None]]
StateListener = Callable[[SubscriberState, SubscriberState], None]

TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, ConnectionError, OSError)

PENDING = "0"
NEW = ">"


def _text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class ChannelSubscriber:
    """
    Long-lived subscription to one channel.
    Delivers each entry's payload to a single handler and acknowledges it
    whether or not the handler succeeded.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        topic: str,
        client_id: str,
        consumer_name: Optional[str] = None,
        block_ms: int = 5000,
        batch_size: int = 10,
        reconnect_min_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        on_state_change: Optional[StateListener] = None
    ):
        """
        Initialize subscriber.

        Args:
            redis_client: Connected client for the channel endpoint
            topic: Stream name
            client_id: Stable identity, used as the consumer group name
            consumer_name: Consumer within the group, defaults to client_id
            block_ms: How long one read blocks waiting for entries
            batch_size: Entries per read
            reconnect_min_delay: First backoff in seconds
            reconnect_max_delay: Backoff ceiling in seconds
            on_state_change: Called with (old, new) on every transition

        Raises:
            ConfigurationError: If topic or client_id is empty
        """
        if not topic or not client_id:
            raise ConfigurationError("Channel topic and client id are required")

        self.redis_client = redis_client
        self.topic = topic
        self.group = client_id
        self.consumer_name = consumer_name or client_id
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.reconnect_min_delay = reconnect_min_delay
        self.reconnect_max_delay = max(reconnect_max_delay, reconnect_min_delay)

        self._state = SubscriberState.DISCONNECTED
        self._listeners: List[StateListener] = []
        if on_state_change:
            self._listeners.append(on_state_change)

        self._handler: Optional[MessageHandler] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self.subscribe_calls = 0
        self.delivered = 0

    @property
    def state(self) -> SubscriberState:
        return self._state

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _transition(self, new_state: SubscriberState, reason: str = "") -> None:
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        log = logger.warning if new_state in (
            SubscriberState.INTERRUPTED, SubscriberState.RECONNECTING
        ) else logger.info
        log(
            f"Subscriber state: {old_state.value} -> {new_state.value}",
            extra={
                "component": "stream_subscriber",
                "topic": self.topic,
                "from_state": old_state.value,
                "to_state": new_state.value,
                "reason": reason
            }
        )

        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")

    async def start(self, handler: MessageHandler) -> None:
        """
        Connect, subscribe and start the read loop in the background.

        Raises:
            SubscriberError: If the initial connection or subscribe fails
        """
        if self._task and not self._task.done():
            logger.warning("Subscriber already running")
            return

        self._handler = handler
        self._stopping = False
        self._transition(SubscriberState.CONNECTING, "start")

        try:
            await self.redis_client.client.ping()
            await self._subscribe()
        except (RedisError, RuntimeError, OSError) as e:
            self._transition(SubscriberState.DISCONNECTED, f"connect failed: {e}")
            raise SubscriberError(f"Failed to subscribe to {self.topic}: {e}") from e

        self._transition(SubscriberState.CONNECTED, "subscribed")
        self._task = asyncio.create_task(self._run(), name=f"subscriber:{self.topic}")

        logger.info(
            "Subscription active, waiting for messages",
            extra={
                "component": "stream_subscriber",
                "topic": self.topic,
                "group": self.group,
                "consumer": self.consumer_name
            }
        )

    async def stop(self) -> None:
        """Explicit disconnect. Abandons any reconnect attempt in progress."""
        self._stopping = True

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        self._transition(SubscriberState.DISCONNECTED, "explicit disconnect")

    async def _subscribe(self) -> None:
        """Create the consumer group if missing; an existing group is the resumed session."""
        self.subscribe_calls += 1
        try:
            await self.redis_client.client.xgroup_create(
                self.topic,
                self.group,
                id="$",
                mkstream=True
            )
            logger.info(
                "Created subscription group",
                extra={"component": "stream_subscriber", "topic": self.topic, "group": self.group}
            )
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.info(
                "Subscription group exists, resuming session",
                extra={"component": "stream_subscriber", "topic": self.topic, "group": self.group}
            )

    async def _run(self) -> None:
        """Read loop. Drains this consumer's pending entries first, then new ones."""
        cursor = PENDING

        while not self._stopping:
            try:
                response = await self.redis_client.client.xreadgroup(
                    self.group,
                    self.consumer_name,
                    {self.topic: cursor},
                    count=self.batch_size,
                    block=None if cursor != NEW else self.block_ms
                )
            except asyncio.CancelledError:
                raise
            except TRANSPORT_ERRORS as e:
                if self._stopping:
                    break
                await self._reconnect(e)
                cursor = PENDING
                continue
            except ResponseError as e:
                if "NOGROUP" in str(e):
                    logger.warning(
                        "Session not present on broker, subscribing again",
                        extra={"component": "stream_subscriber", "topic": self.topic}
                    )
                    await self._resubscribe()
                    cursor = PENDING
                    continue
                logger.error(f"Channel read failed: {e}", extra={"component": "stream_subscriber"})
                await asyncio.sleep(self.reconnect_min_delay)
                continue
            except Exception as e:
                logger.error(
                    f"Unexpected error in read loop: {e}",
                    exc_info=True,
                    extra={"component": "stream_subscriber"}
                )
                await asyncio.sleep(self.reconnect_min_delay)
                continue

            entries = self._entries(response)

            if cursor != NEW:
                if not entries:
                    cursor = NEW
                    continue
                # Pending reads are relative to the last id seen
                cursor = _text(entries[-1][0])

            for entry_id, fields in entries:
                await self._deliver(_text(entry_id), fields)

    async def _resubscribe(self) -> None:
        try:
            await self._subscribe()
        except (RedisError, OSError) as e:
            logger.error(f"Resubscribe failed: {e}", extra={"component": "stream_subscriber"})
            await asyncio.sleep(self.reconnect_min_delay)

    async def _reconnect(self, error: Exception) -> None:
        """Transport lost: back off and reconnect until the endpoint answers or stop() is called."""
        self._transition(SubscriberState.INTERRUPTED, str(error))
        delay = self.reconnect_min_delay
        attempt = 0

        while not self._stopping:
            attempt += 1
            self._transition(SubscriberState.RECONNECTING, f"attempt {attempt}")
            try:
                await self.redis_client.reconnect()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                transport_lost = isinstance(e, TRANSPORT_ERRORS)
                log = logger.warning if transport_lost else logger.error
                log(
                    f"Reconnect attempt {attempt} failed, retrying in {delay:.1f}s: {e}",
                    exc_info=not transport_lost,
                    extra={
                        "component": "stream_subscriber",
                        "attempt": attempt,
                        "delay_seconds": delay
                    }
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.reconnect_max_delay)
                continue

            self._transition(SubscriberState.CONNECTED, "resumed")
            return

    @staticmethod
    def _entries(response) -> List[Tuple]:
        if not response:
            return []
        entries: List[Tuple] = []
        for _stream_name, stream_entries in response:
            entries.extend(stream_entries or [])
        return entries

    async def _deliver(self, entry_id: str, fields) -> None:
        payload = None
        if fields:
            payload = fields.get(PAYLOAD_FIELD.encode("utf-8"), fields.get(PAYLOAD_FIELD))

        try:
            if payload is None:
                logger.warning(
                    "Channel entry has no payload, dropping",
                    extra={"component": "stream_subscriber", "entry_id": entry_id}
                )
            elif self._handler:
                if isinstance(payload, str):
                    payload = payload.encode("utf-8")
                await self._handler(payload)
                self.delivered += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Message handler failed: {e}",
                exc_info=True,
                extra={"component": "stream_subscriber", "entry_id": entry_id}
            )

        await self._ack(entry_id)

    async def _ack(self, entry_id: str) -> None:
        try:
            await self.redis_client.client.xack(self.topic, self.group, entry_id)
        except (RedisError, OSError) as e:
            # Stays pending and comes back after the next reconnect
            logger.warning(
                f"Failed to acknowledge entry: {e}",
                extra={"component": "stream_subscriber", "entry_id": entry_id}
            )
