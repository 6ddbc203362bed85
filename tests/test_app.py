"""Tests for composing the relay and listener processes."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from posprint.app import RelayApiService
from posprint.config import AppConfig
from posprint.domain.ports import ConfigurationError
from posprint.domain.schema import SubscriberState
from posprint.infra.memory_store import InMemoryMessageStore
from posprint.infra.redis_store import RedisMessageStore
from posprint.listener import PrintListenerApplication
from tests.conftest import FakeStreamRedis


def fake_redis_client_cls(client=None):
    """Replacement for the RedisClient class: instances connect instantly."""
    created = []

    def factory(url, **kwargs):
        instance = MagicMock()
        instance.url = url
        instance.client = client or MagicMock()
        instance.connect = AsyncMock()
        instance.close = AsyncMock()
        instance.ping = AsyncMock(return_value=True)
        instance.reconnect = AsyncMock()
        created.append(instance)
        return instance

    factory.created = created
    return factory


class TestRelayApiService:

    @pytest.mark.asyncio
    async def test_setup_shares_one_connection(self, monkeypatch):
        redis_cls = fake_redis_client_cls()
        monkeypatch.setattr("posprint.app.RedisClient", redis_cls)
        service = RelayApiService(AppConfig())

        await service.setup()

        assert isinstance(service.store, RedisMessageStore)
        assert len(redis_cls.created) == 1
        assert service.channel_client is service.store_client
        assert service.ingestion_service.channel == "posprint:print"
        assert service.api is not None

        await service.cleanup()
        redis_cls.created[0].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_separate_channel_endpoint(self, monkeypatch):
        redis_cls = fake_redis_client_cls()
        monkeypatch.setattr("posprint.app.RedisClient", redis_cls)
        config = AppConfig(channel={"url": "redis://broker:6379/2"})

        async with RelayApiService(config).lifespan() as service:
            assert service.channel_client.url == "redis://broker:6379/2"

        assert [c.url for c in redis_cls.created] == ["redis://redis:6379/0", "redis://broker:6379/2"]
        for client in redis_cls.created:
            client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_memory_backend(self, monkeypatch):
        monkeypatch.setattr("posprint.app.RedisClient", fake_redis_client_cls())
        config = AppConfig(store={"backend": "memory"})

        service = RelayApiService(config)
        await service.setup()

        assert isinstance(service.store, InMemoryMessageStore)
        assert service.store_client is None
        assert service.channel_client is not None

    @pytest.mark.asyncio
    async def test_missing_channel_endpoint_fails_setup(self, monkeypatch):
        monkeypatch.setattr("posprint.app.RedisClient", fake_redis_client_cls())
        config = AppConfig(redis={"url": ""})

        with pytest.raises(ConfigurationError):
            await RelayApiService(config).setup()

    @pytest.mark.asyncio
    async def test_run_requires_setup(self):
        with pytest.raises(RuntimeError):
            await RelayApiService(AppConfig()).run()

    @pytest.mark.asyncio
    async def test_run_serves_api_through_uvicorn_server(self, monkeypatch):
        monkeypatch.setattr("posprint.app.RedisClient", fake_redis_client_cls())
        uvicorn_mock = MagicMock()
        uvicorn_mock.Server.return_value.serve = AsyncMock()
        monkeypatch.setattr("posprint.app.uvicorn", uvicorn_mock)
        config = AppConfig(server={"host": "127.0.0.1", "port": 8090})
        service = RelayApiService(config)
        await service.setup()

        await service.run()

        kwargs = uvicorn_mock.Config.call_args.kwargs
        assert kwargs["app"] is service.api.app
        assert (kwargs["host"], kwargs["port"]) == ("127.0.0.1", 8090)
        uvicorn_mock.Server.return_value.serve.assert_awaited_once()
        assert not hasattr(service.api, "run")


class TestPrintListenerApplication:

    @pytest.mark.asyncio
    async def test_runs_until_shutdown(self, monkeypatch):
        stream = FakeStreamRedis()
        monkeypatch.setattr("posprint.listener.RedisClient", fake_redis_client_cls(stream))
        monkeypatch.setattr("posprint.listener.signal.signal", MagicMock())
        config = AppConfig(printer={"drain_timeout_seconds": 0})

        app = PrintListenerApplication(config)
        await app.setup()
        task = asyncio.create_task(app.run())
        await asyncio.sleep(0.05)

        assert app.subscriber.state == SubscriberState.CONNECTED
        assert app.subscriber.group == "posprint-listener"
        assert app.print_service.formatter.line_width == 42

        app.request_shutdown()
        await asyncio.wait_for(task, timeout=2.0)
        await app.cleanup()

        assert app.subscriber.state == SubscriberState.DISCONNECTED
        assert stream.xgroup_create_calls == 1

    @pytest.mark.asyncio
    async def test_missing_channel_endpoint_is_fatal(self, monkeypatch):
        monkeypatch.setattr("posprint.listener.RedisClient", fake_redis_client_cls())

        with pytest.raises(ConfigurationError):
            await PrintListenerApplication(AppConfig(redis={"url": ""})).setup()
