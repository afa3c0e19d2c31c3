"""Tests for the live event channel."""

from unittest.mock import AsyncMock

import pytest

from gateway.broadcaster import LiveNamespace, create_socket_server
from gateway.schemas import Direction, Message, Source, Status

from helpers import emitted


class TestLiveBroadcaster:
    @pytest.mark.asyncio
    async def test_status(self, broadcaster, sio):
        await broadcaster.publish_status(Status.READY)
        sio.emit.assert_awaited_once_with("status", "READY", namespace="/")

    @pytest.mark.asyncio
    async def test_status_with_detail(self, broadcaster, sio):
        await broadcaster.publish_status(Status.AUTH_FAILURE, "restore failed")
        assert emitted(sio, "status") == [("AUTH_FAILURE", "restore failed")]

    @pytest.mark.asyncio
    async def test_qr(self, broadcaster, sio):
        await broadcaster.publish_qr("data:image/png;base64,AAAA")
        assert emitted(sio, "qr") == ["data:image/png;base64,AAAA"]

    @pytest.mark.asyncio
    async def test_message_uses_wire_names(self, broadcaster, sio):
        message = Message(
            direction=Direction.OUTGOING,
            from_="me",
            to="6281@c.us",
            body="hi",
            external_id="x",
            source=Source.WEB_UI,
            timestamp=1700000000,
        )
        await broadcaster.publish_message(message)

        payload = emitted(sio, "message")[0]
        assert payload["from"] == "me"
        assert payload["source"] == "WEB_UI"
        assert payload["direction"] == "outgoing"


class TestNamespace:
    @pytest.mark.asyncio
    async def test_ping_pong(self):
        namespace = LiveNamespace("/")
        namespace.emit = AsyncMock()

        await namespace.on_ping("sid-1")

        namespace.emit.assert_awaited_once_with("pong", room="sid-1")

    def test_server_registers_namespace(self):
        sio = create_socket_server()
        assert "/" in sio.namespace_handlers
