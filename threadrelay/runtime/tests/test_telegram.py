"""Tests for the Telegram gateway against a fake Bot API server."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from threadrelay.runtime.errors import AuthError, RelayError, TransportError
from threadrelay.runtime.messaging.telegram import (
    TELEGRAM_MAX_LEN,
    IncomingMessage,
    TelegramGateway,
    parse_update,
    split_message,
)

TOKEN = "123:abc"


def _update(update_id: int, text: str | None = "hello", chat_id: int = 42, username: str | None = "alice") -> dict:
    chat: dict[str, Any] = {"id": chat_id, "type": "private"}
    if username:
        chat["username"] = username
    message: dict[str, Any] = {"message_id": update_id * 10, "chat": chat}
    if text is not None:
        message["text"] = text
    return {"update_id": update_id, "message": message}


class FakeBotApi:
    """Minimal Bot API: records calls, serves queued updates and failures."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.updates: list[list[dict]] = []
        self.failures: dict[str, list[tuple[int, dict]]] = {}

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/bot{token}/{method}", self._handle)
        return app

    def fail(self, method: str, status: int, description: str = "error") -> None:
        body = {"ok": False, "error_code": status, "description": description}
        self.failures.setdefault(method, []).append((status, body))

    def calls_to(self, method: str) -> list[dict]:
        return [payload for name, payload in self.calls if name == method]

    async def _handle(self, req: web.Request) -> web.Response:
        assert req.match_info["token"] == TOKEN
        method = req.match_info["method"]
        payload = await req.json()
        self.calls.append((method, payload))
        queued = self.failures.get(method)
        if queued:
            status, body = queued.pop(0)
            return web.json_response(body, status=status)
        if method == "getUpdates":
            result = self.updates.pop(0) if self.updates else []
            return web.json_response({"ok": True, "result": result})
        return web.json_response({"ok": True, "result": True})


@asynccontextmanager
async def _gateway(api: FakeBotApi) -> AsyncIterator[TelegramGateway]:
    async with TestServer(api.app()) as server:
        gw = TelegramGateway(
            TOKEN,
            api_base=str(server.make_url("/")),
            poll_timeout=0,
            retry_delay=0.01,
        )
        try:
            yield gw
        finally:
            await gw.close()


class TestSplitMessage:
    def test_short_text_unchanged(self) -> None:
        assert split_message("hello") == ["hello"]

    def test_empty(self) -> None:
        assert split_message("") == [""]

    def test_prefers_newlines(self) -> None:
        assert split_message("line1\nline2\nline3", max_len=12) == ["line1\nline2", "line3"]

    def test_falls_back_to_spaces(self) -> None:
        chunks = split_message(" ".join(["word"] * 30), max_len=50)
        assert all(len(c) <= 50 for c in chunks)
        assert " ".join(chunks).split() == ["word"] * 30

    def test_hard_split_without_breaks(self) -> None:
        assert split_message("x" * 25, max_len=10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_telegram_limit(self) -> None:
        chunks = split_message("a" * (TELEGRAM_MAX_LEN + 1))
        assert [len(c) for c in chunks] == [TELEGRAM_MAX_LEN, 1]


class TestParseUpdate:
    def test_text_message(self) -> None:
        msg = parse_update(_update(7, "hi"))
        assert msg == IncomingMessage(chat_id=42, text="hi", sender_name="alice", update_id=7, message_id=70)

    def test_non_text_message(self) -> None:
        msg = parse_update(_update(7, None))
        assert msg is not None
        assert msg.text is None

    def test_sender_falls_back_to_from(self) -> None:
        update = _update(1, username=None)
        update["message"]["from"] = {"id": 5, "username": "bob"}
        assert parse_update(update).sender_name == "bob"

    def test_no_username(self) -> None:
        assert parse_update(_update(1, username=None)).sender_name is None

    def test_non_message_update(self) -> None:
        assert parse_update({"update_id": 1, "edited_message": {"chat": {"id": 1}}}) is None

    def test_missing_chat_id(self) -> None:
        assert parse_update({"update_id": 1, "message": {"text": "x", "chat": {}}}) is None


class TestOutbound:
    @pytest.mark.asyncio
    async def test_send_message(self) -> None:
        api = FakeBotApi()
        async with _gateway(api) as gw:
            await gw.send_message(42, "hi there")
        assert api.calls_to("sendMessage") == [{"chat_id": 42, "text": "hi there"}]

    @pytest.mark.asyncio
    async def test_long_message_split(self) -> None:
        api = FakeBotApi()
        async with _gateway(api) as gw:
            await gw.send_message(42, "a" * (TELEGRAM_MAX_LEN + 10))
        sent = api.calls_to("sendMessage")
        assert [len(p["text"]) for p in sent] == [TELEGRAM_MAX_LEN, 10]

    @pytest.mark.asyncio
    async def test_send_typing(self) -> None:
        api = FakeBotApi()
        async with _gateway(api) as gw:
            await gw.send_typing(42)
        assert api.calls_to("sendChatAction") == [{"chat_id": 42, "action": "typing"}]


class TestErrors:
    @pytest.mark.asyncio
    async def test_unauthorized(self) -> None:
        api = FakeBotApi()
        api.fail("sendMessage", 401, "Unauthorized")
        async with _gateway(api) as gw:
            with pytest.raises(AuthError):
                await gw.send_message(42, "x")

    @pytest.mark.asyncio
    async def test_bad_request(self) -> None:
        api = FakeBotApi()
        api.fail("sendMessage", 400, "Bad Request: chat not found")
        async with _gateway(api) as gw:
            with pytest.raises(RelayError) as exc_info:
                await gw.send_message(42, "x")
        assert not isinstance(exc_info.value, TransportError)
        assert "chat not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_is_transport(self) -> None:
        api = FakeBotApi()
        api.fail("sendChatAction", 502, "Bad Gateway")
        async with _gateway(api) as gw:
            with pytest.raises(TransportError):
                await gw.send_typing(42)

    @pytest.mark.asyncio
    async def test_unreachable_api(self) -> None:
        api = FakeBotApi()
        async with TestServer(api.app()) as server:
            base = str(server.make_url("/"))
        gw = TelegramGateway(TOKEN, api_base=base)
        try:
            with pytest.raises(TransportError):
                await gw.send_message(42, "x")
        finally:
            await gw.close()


class TestPolling:
    @pytest.mark.asyncio
    async def test_poll_once_dispatches_messages(self) -> None:
        api = FakeBotApi()
        api.updates.append([
            _update(5, "hello"),
            {"update_id": 6, "edited_message": {"chat": {"id": 42}}},
            _update(7, "again", chat_id=43),
        ])
        received: list[IncomingMessage] = []

        async def handler(msg: IncomingMessage) -> None:
            received.append(msg)

        async with _gateway(api) as gw:
            gw.on_message(handler)
            assert await gw.poll_once() == 3
            await gw.wait_idle()
            assert gw.offset == 8
            await gw.poll_once()

        assert [(m.chat_id, m.text) for m in received] == [(42, "hello"), (43, "again")]
        polls = api.calls_to("getUpdates")
        assert polls[0] == {"offset": 0, "timeout": 0, "allowed_updates": ["message"]}
        assert polls[1]["offset"] == 8

    @pytest.mark.asyncio
    async def test_handler_failure_is_isolated(self) -> None:
        api = FakeBotApi()
        api.updates.append([_update(1, "boom"), _update(2, "fine")])
        received: list[str] = []

        async def handler(msg: IncomingMessage) -> None:
            if msg.text == "boom":
                raise RuntimeError("handler blew up")
            received.append(msg.text)

        async with _gateway(api) as gw:
            gw.on_message(handler)
            await gw.poll_once()
            await gw.wait_idle()
            assert gw.in_flight == 0

        assert received == ["fine"]

    @pytest.mark.asyncio
    async def test_run_retries_then_stops(self) -> None:
        api = FakeBotApi()
        api.fail("getUpdates", 502, "Bad Gateway")
        api.updates.append([_update(1, "hello")])
        polling_seen: list[bool] = []

        async with _gateway(api) as gw:
            async def handler(msg: IncomingMessage) -> None:
                polling_seen.append(gw.polling)
                await gw.stop()

            gw.on_message(handler)
            await asyncio.wait_for(gw.run(), timeout=5)
            assert not gw.polling

        assert polling_seen == [True]
        assert len(api.calls_to("getUpdates")) >= 2

    @pytest.mark.asyncio
    async def test_run_stops_on_auth_error(self) -> None:
        api = FakeBotApi()
        api.fail("getUpdates", 401, "Unauthorized")
        async with _gateway(api) as gw:
            with pytest.raises(AuthError):
                await asyncio.wait_for(gw.run(), timeout=5)
            assert not gw.polling
