"""
Messaging client seam.

The gateway never speaks the chat protocol itself. A ``MessagingClient``
exposes a single event feed and a send primitive; ``BridgeClient`` is the
production implementation, talking Socket.IO to an out-of-process bridge
that owns the browser session, QR handshake and transport.
"""

import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

import socketio
from socketio.exceptions import SocketIOError

from .errors import StoreError, TransportError

logger = logging.getLogger(__name__)


class ClientEventKind(str, Enum):
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    MESSAGE = "message"


@dataclass
class ClientEvent:
    kind: ClientEventKind
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ClientEvent], Awaitable[None]]


class MessagingClient(abc.ABC):
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def remove_all_listeners(self):
        self._listeners.clear()

    async def _emit(self, kind: ClientEventKind, payload: Dict[str, Any] = None):
        event = ClientEvent(kind, payload or {})
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(f"Listener failed on {kind.value} event")

    @abc.abstractmethod
    async def initialize(self):
        """Start the handshake. Progress is reported through events."""

    @abc.abstractmethod
    async def destroy(self):
        """Close the connection and release its resources."""

    @abc.abstractmethod
    async def send_message(self, chat_id: str, body: str) -> str:
        """Send a text message and return the id the network assigned to it."""


ClientFactory = Callable[[], MessagingClient]


class BridgeClient(MessagingClient):
    def __init__(self, url: str, client_id: str, credentials, send_timeout: float = 30.0):
        super().__init__()
        self.url = url
        self.client_id = client_id
        self.credentials = credentials
        self.send_timeout = send_timeout

        self.sio = socketio.AsyncClient(reconnection=True)
        self.sio.on("qr", self._on_qr)
        self.sio.on("authenticated", self._on_authenticated)
        self.sio.on("session", self._on_session)
        self.sio.on("ready", self._on_ready)
        self.sio.on("auth_failure", self._on_auth_failure)
        self.sio.on("message", self._on_message)

    async def initialize(self):
        session = await self.credentials.load()
        logger.info(f"Connecting to bridge {self.url} (stored session: {'yes' if session else 'no'})")
        await self.sio.connect(self.url, wait_timeout=10)
        await self.sio.emit("init", {"client_id": self.client_id, "session": session})

    async def destroy(self):
        try:
            if self.sio.connected:
                await self.sio.emit("destroy", {"client_id": self.client_id})
        finally:
            # disconnects, or stops a pending reconnect loop
            await self.sio.shutdown()

    async def send_message(self, chat_id: str, body: str) -> str:
        if not self.sio.connected:
            raise TransportError("Bridge is not connected")
        try:
            result = await self.sio.call(
                "send_message",
                {"client_id": self.client_id, "to": chat_id, "body": body},
                timeout=self.send_timeout,
            )
        except SocketIOError as e:
            raise TransportError(f"Send failed: {e}") from e

        if not isinstance(result, dict) or result.get("error"):
            error = result.get("error") if isinstance(result, dict) else result
            raise TransportError(f"Send failed: {error}")
        return result["id"]

    # ---- bridge events ----
    async def _on_qr(self, data):
        await self._emit(ClientEventKind.QR, {"qr": data["qr"] if isinstance(data, dict) else data})

    async def _on_authenticated(self, data=None):
        if isinstance(data, dict) and data.get("session"):
            await self._store_session(data["session"])
        await self._emit(ClientEventKind.AUTHENTICATED)

    async def _on_session(self, data):
        await self._store_session(data)

    async def _store_session(self, data):
        try:
            await self.credentials.save(data)
        except StoreError as e:
            logger.error(f"Could not persist session credentials: {e}")

    async def _on_ready(self, data=None):
        await self._emit(ClientEventKind.READY)

    async def _on_auth_failure(self, message=None):
        await self._emit(ClientEventKind.AUTH_FAILURE, {"message": message})

    async def _on_message(self, data):
        await self._emit(ClientEventKind.MESSAGE, data)
