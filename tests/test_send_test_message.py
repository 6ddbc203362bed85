"""Tests for the send-test-message utility."""

import json

import httpx
import pytest

from posprint.tools import send_test_message as tool


class TestSendTestMessage:

    @pytest.mark.asyncio
    async def test_posts_email_and_message(self, capsys):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(201, json={"message": "Message received."})

        status = await tool.send_test_message(
            "https://relay.example/",
            "a@b.c",
            "hi",
            transport=httpx.MockTransport(handler)
        )

        assert status == 201
        assert seen == [{"email": "a@b.c", "message": "hi"}]
        assert "Response status: 201" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_requires_function_url(self, monkeypatch):
        monkeypatch.delenv("FUNCTION_URL", raising=False)

        assert await tool.run() == 1

    @pytest.mark.asyncio
    async def test_error_status_fails(self, monkeypatch):
        monkeypatch.setenv("FUNCTION_URL", "https://relay.example/")

        async def rejected(url, email, message, **kwargs):
            return 429

        monkeypatch.setattr(tool, "send_test_message", rejected)

        assert await tool.run() == 1

    def test_defaults(self):
        assert tool.DEFAULT_EMAIL == "test@example.com"
        assert "multi-line" in tool.DEFAULT_MESSAGE
