"""
Session Manager

Owns the one messaging client connection and its lifecycle:
initialize, teardown, re-initialize and the state transitions driven by
client events. Nothing else constructs, destroys or inspects the client.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import segno

from .broadcaster import LiveBroadcaster
from .client import ClientEvent, ClientEventKind, ClientFactory, MessagingClient
from .errors import NotReadyError
from .models import CredentialStore
from .schemas import ConnectionState, SessionSnapshot, Status

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


def render_qr(challenge: str) -> str:
    """Render a login challenge as a PNG data URI the UI can show directly."""
    return segno.make(challenge, error="l").png_data_uri(scale=5, border=2)


class SessionManager:
    def __init__(
        self,
        client_factory: ClientFactory,
        broadcaster: LiveBroadcaster,
        credentials: CredentialStore,
        reset_delay: float = 2.0,
    ):
        self._client_factory = client_factory
        self._broadcaster = broadcaster
        self._credentials = credentials
        self.reset_delay = reset_delay

        self._client: Optional[MessagingClient] = None
        self._state = ConnectionState.UNINITIALIZED
        self._qr: Optional[str] = None
        self._lock = asyncio.Lock()
        self._handshake: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None
        self._message_handler: Optional[MessageHandler] = None

        self._handlers = {
            ClientEventKind.QR: self._on_qr,
            ClientEventKind.AUTHENTICATED: self._on_authenticated,
            ClientEventKind.READY: self._on_ready,
            ClientEventKind.AUTH_FAILURE: self._on_auth_failure,
            ClientEventKind.MESSAGE: self._on_message,
        }

    # ---- queries ----
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ConnectionState.READY and self._client is not None

    @property
    def last_qr(self) -> Optional[str]:
        return self._qr

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(state=self._state, ready=self.is_ready, qr=self._qr)

    def on_message(self, handler: MessageHandler):
        self._message_handler = handler

    # ---- lifecycle ----
    async def initialize(self):
        async with self._lock:
            await self._initialize()

    async def _initialize(self) -> bool:
        """Replace the current client. Returns False if none could be built."""
        await self._teardown()

        logger.info("Initializing WhatsApp client")
        try:
            client = self._client_factory()
        except Exception as e:
            logger.exception("Could not construct WhatsApp client")
            self._state = ConnectionState.AUTH_FAILED
            await self._broadcaster.publish_status(Status.AUTH_FAILURE, str(e))
            return False

        client.subscribe(lambda event: self._handle_event(client, event))
        self._client = client
        self._state = ConnectionState.UNINITIALIZED
        self._handshake = asyncio.create_task(self._start(client))
        return True

    async def _start(self, client: MessagingClient):
        try:
            await client.initialize()
        except Exception as e:
            if client is not self._client:
                return
            logger.error(f"WhatsApp client handshake failed: {e}")
            self._state = ConnectionState.AUTH_FAILED
            await self._broadcaster.publish_status(Status.AUTH_FAILURE, str(e))

    async def _teardown(self):
        client, self._client = self._client, None
        self._qr = None
        if client is None:
            return

        client.remove_all_listeners()
        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
        self._handshake = None

        try:
            await client.destroy()
            logger.info("Old client destroyed")
        except Exception as e:
            logger.warning(f"Error destroying old client: {e}")

    async def clear_session(self) -> asyncio.Task:
        """Drop the current login and start over with a fresh QR.

        Returns the background task that re-initializes the client once the
        reset delay has passed, so callers can await the full cycle.
        """
        logger.info("Clearing WhatsApp session")
        self._state = ConnectionState.RESETTING
        try:
            async with self._lock:
                await self._teardown()
                if await self._credentials.delete():
                    logger.info("Stored session credentials deleted")
        finally:
            self._reset_task = asyncio.create_task(self._reinitialize())
        return self._reset_task

    async def _reinitialize(self):
        # lets the bridge release the old browser profile before reuse
        await asyncio.sleep(self.reset_delay)
        try:
            async with self._lock:
                started = await self._initialize()
            if started:
                await self._broadcaster.publish_status(Status.SESSION_RESET)
        except Exception:
            logger.exception("Re-initialization after session reset failed")

    async def shutdown(self):
        if self._reset_task is not None and not self._reset_task.done():
            self._reset_task.cancel()
        async with self._lock:
            await self._teardown()
        self._state = ConnectionState.UNINITIALIZED

    # ---- send ----
    async def send(self, chat_id: str, body: str) -> str:
        client = self._client
        if not self.is_ready or client is None:
            raise NotReadyError()
        return await client.send_message(chat_id, body)

    # ---- events ----
    async def _handle_event(self, client: MessagingClient, event: ClientEvent):
        if client is not self._client or self._state == ConnectionState.RESETTING:
            logger.debug(f"Ignoring {event.kind.value} event from retired client")
            return
        await self._handlers[event.kind](event.payload)

    async def _on_qr(self, payload: Dict[str, Any]):
        self._qr = render_qr(payload["qr"])
        self._state = ConnectionState.AWAITING_QR
        await self._broadcaster.publish_qr(self._qr)
        await self._broadcaster.publish_status(Status.QR_RECEIVED)

    async def _on_authenticated(self, payload: Dict[str, Any]):
        self._state = ConnectionState.AUTHENTICATED
        await self._broadcaster.publish_status(Status.AUTHENTICATED)

    async def _on_ready(self, payload: Dict[str, Any]):
        self._state = ConnectionState.READY
        self._qr = None
        await self._broadcaster.publish_status(Status.READY)

    async def _on_auth_failure(self, payload: Dict[str, Any]):
        detail = payload.get("message") or "authentication failed"
        logger.error(f"Authentication failure: {detail}")
        self._state = ConnectionState.AUTH_FAILED
        await self._broadcaster.publish_status(Status.AUTH_FAILURE, detail)

    async def _on_message(self, payload: Dict[str, Any]):
        if self._message_handler is None:
            logger.warning("Inbound message dropped, no handler registered")
            return
        await self._message_handler(payload)
