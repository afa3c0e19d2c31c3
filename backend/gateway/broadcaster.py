import logging
from typing import Any, Dict

import socketio

from .schemas import Message, Status

logger = logging.getLogger(__name__)


class LiveNamespace(socketio.AsyncNamespace):
    async def on_connect(self, sid, environ):
        logger.info(f"UI connected: {sid}")
        return True

    async def on_ping(self, sid, data=None):
        await self.emit("pong", room=sid)

    async def on_disconnect(self, sid):
        logger.info(f"UI disconnected: {sid}")


def create_socket_server(cors_allowed_origins="*") -> socketio.AsyncServer:
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=cors_allowed_origins,
        logger=logger,
        async_handlers=True,
    )
    sio.register_namespace(LiveNamespace("/"))
    return sio


class LiveBroadcaster:
    """Pushes gateway events to every connected UI client. No replay."""

    def __init__(self, sio: socketio.AsyncServer, namespace: str = "/"):
        self.sio = sio
        self.namespace = namespace

    async def publish(self, event: str, data: Any):
        await self.sio.emit(event, data, namespace=self.namespace)

    async def publish_status(self, status: Status, detail: str = None):
        logger.info(f"Status -> {status.value}" + (f" ({detail})" if detail else ""))
        # a tuple is delivered as separate handler arguments
        data = status.value if detail is None else (status.value, detail)
        await self.publish("status", data)

    async def publish_qr(self, data_uri: str):
        await self.publish("qr", data_uri)

    async def publish_message(self, message: Message):
        payload: Dict[str, Any] = message.to_payload()
        await self.publish("message", payload)
