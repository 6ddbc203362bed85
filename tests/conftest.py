"""Shared fakes and fixtures for the posprint test suite."""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from posprint.domain.ports import Publisher, PrinterDevice, PrinterError, PublishError
from posprint.domain.schema import Message, format_timestamp
from posprint.infra.memory_store import InMemoryMessageStore


FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class MutableClock:
    """Clock whose current time tests can move."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeRedisWrapper:
    """Stands in for RedisClient: exposes .client, ping() and reconnect()."""

    def __init__(self, client):
        self.client = client
        self.healthy = True
        self.reconnects = 0

    async def ping(self, timeout=None) -> bool:
        return self.healthy

    async def reconnect(self) -> None:
        self.reconnects += 1
        await self.client.ping()


class FakeStreamRedis:
    """
    Stream commands for the subscriber. xreadgroup replays a script of
    results (an exception in the script is raised), then idles.
    """

    def __init__(self):
        self.reads: list = []
        self.read_cursors: List[str] = []
        self.acked: List[str] = []
        self.groups = set()
        self.xgroup_create_calls = 0
        self.ping_failures = 0
        self.ping_error: Exception = RedisConnectionError("Connection refused")

    async def xgroup_create(self, name, groupname, id="$", mkstream=False):
        self.xgroup_create_calls += 1
        if (name, groupname) in self.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        self.groups.add((name, groupname))
        return True

    async def xreadgroup(self, groupname, consumername, streams, count=None, block=None, noack=False):
        self.read_cursors.extend(streams.values())
        if self.reads:
            item = self.reads.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        await asyncio.sleep(0.01)
        return []

    async def xack(self, name, groupname, *ids):
        self.acked.extend(ids)
        return len(ids)

    async def ping(self):
        if self.ping_failures > 0:
            self.ping_failures -= 1
            raise self.ping_error
        return True


def stream_response(topic: str, *entries) -> list:
    """Build an XREADGROUP reply from (entry_id, payload_bytes) pairs."""
    return [[
        topic.encode("utf-8"),
        [(entry_id.encode("utf-8"), {b"payload": payload}) for entry_id, payload in entries]
    ]]


class FakePublisher(Publisher):
    def __init__(self, fail: bool = False, healthy: bool = True):
        self.fail = fail
        self.healthy = healthy
        self.published: List[tuple] = []

    async def publish(self, channel: str, payload: bytes) -> str:
        if self.fail:
            raise PublishError("broker unavailable")
        self.published.append((channel, payload))
        return f"{len(self.published)}-0"

    async def check_health(self) -> bool:
        return self.healthy


class FakeDevice(PrinterDevice):
    """Records every call; any stage can be told to fail."""

    def __init__(
        self,
        fail_on_open: bool = False,
        fail_on_write: bool = False,
        fail_on_close: bool = False
    ):
        self.fail_on_open = fail_on_open
        self.fail_on_write = fail_on_write
        self.fail_on_close = fail_on_close
        self.calls: List[str] = []
        self.lines: List[str] = []
        self.fed: Optional[int] = None

    def open(self) -> None:
        self.calls.append("open")
        if self.fail_on_open:
            raise PrinterError("printer unreachable")

    def write_lines(self, lines) -> None:
        self.calls.append("write")
        if self.fail_on_write:
            raise PrinterError("write failed")
        self.lines.extend(lines)

    def feed_and_cut(self, feed_lines: int) -> None:
        self.calls.append("cut")
        self.fed = feed_lines

    def close(self) -> None:
        self.calls.append("close")
        if self.fail_on_close:
            raise PrinterError("close failed")


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def memory_store():
    return InMemoryMessageStore()


@pytest.fixture
def publisher():
    return FakePublisher()


def message_at(message_id: str, moment: datetime, source_ip: str = "192.0.2.10") -> Message:
    return Message(
        message_id=message_id,
        received_at=format_timestamp(moment),
        email="reader@example.com",
        source_ip=source_ip,
        message="hello"
    )
