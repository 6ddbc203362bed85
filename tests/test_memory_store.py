"""Tests for the in-memory message store."""

from datetime import timedelta

import pytest

from posprint.domain.ports import PersistenceError
from tests.conftest import FIXED_NOW, message_at


class TestInMemoryMessageStore:

    @pytest.mark.asyncio
    async def test_put_and_get(self, memory_store):
        record = message_at("m1", FIXED_NOW)
        await memory_store.put(record)

        assert memory_store._records.get("m1") == record
        assert memory_store._records.get("missing") is None
        assert len(memory_store) == 1

    @pytest.mark.asyncio
    async def test_duplicate_id_is_rejected(self, memory_store):
        await memory_store.put(message_at("m1", FIXED_NOW))

        with pytest.raises(PersistenceError):
            await memory_store.put(message_at("m1", FIXED_NOW, source_ip="192.0.2.11"))

        assert memory_store._records["m1"].source_ip == "192.0.2.10"

    @pytest.mark.asyncio
    async def test_query_bounds_are_inclusive(self, memory_store):
        start = FIXED_NOW - timedelta(hours=1)
        await memory_store.put(message_at("m1", start))
        await memory_store.put(message_at("m2", FIXED_NOW - timedelta(minutes=30)))
        await memory_store.put(message_at("m3", FIXED_NOW))
        await memory_store.put(message_at("m4", FIXED_NOW + timedelta(milliseconds=1)))

        assert await memory_store.query_by_origin_and_time("192.0.2.10", start, FIXED_NOW) == 3

    @pytest.mark.asyncio
    async def test_open_ended_query(self, memory_store):
        await memory_store.put(message_at("m1", FIXED_NOW))
        await memory_store.put(message_at("m2", FIXED_NOW + timedelta(days=1)))

        assert await memory_store.query_by_origin_and_time("192.0.2.10", FIXED_NOW) == 2

    @pytest.mark.asyncio
    async def test_unknown_origin_counts_zero(self, memory_store):
        assert await memory_store.query_by_origin_and_time("203.0.113.1", FIXED_NOW) == 0

    @pytest.mark.asyncio
    async def test_health(self, memory_store):
        health = await memory_store.check_health()
        assert health.status == "healthy"
