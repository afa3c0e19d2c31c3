"""
Inbound Relay

Every message the client receives is stored, shown to live viewers and
forwarded to the configured webhook targets. Forwarding is best effort:
one POST per target, no retries, and a failing target never affects the
other one or the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .broadcaster import LiveBroadcaster
from .errors import StoreError
from .models import MessageStore
from .numbers import display_form, is_group
from .schemas import Direction, Message, Source, to_seconds

logger = logging.getLogger(__name__)

TARGET_SOURCES = {
    "test": Source.WEBHOOK_TEST,
    "prod": Source.WEBHOOK_PROD,
}


@dataclass
class DeliveryOutcome:
    label: str
    url: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def build_incoming(payload: Dict[str, Any]) -> Message:
    external_id = payload.get("id")
    if isinstance(external_id, dict):
        external_id = external_id.get("_serialized")

    sender = payload.get("from") or ""
    return Message(
        direction=Direction.INCOMING,
        from_=sender,
        to=payload.get("to") or "",
        body=payload.get("body") or "",
        external_id=external_id,
        is_group=bool(payload.get("isGroupMsg")) or is_group(sender),
        source=Source.INBOUND,
        timestamp=to_seconds(payload.get("timestamp")),
        raw=payload,
    )


class InboundRelay:
    def __init__(
        self,
        store: MessageStore,
        broadcaster: LiveBroadcaster,
        targets: Dict[str, str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.targets = dict(targets)
        self.timeout = timeout
        self.transport = transport

    async def handle(self, payload: Dict[str, Any]) -> List[DeliveryOutcome]:
        message = build_incoming(payload)

        try:
            await self.store.append(message)
        except StoreError as e:
            logger.error(f"Could not store incoming message {message.external_id}: {e}")

        try:
            await self.broadcaster.publish_message(message)
        except Exception as e:
            logger.error(f"Could not broadcast incoming message {message.external_id}: {e}")
        logger.info(f"[INCOMING] {display_form(message.from_)}: {message.body}")

        return await self.fan_out(message)

    async def fan_out(self, message: Message) -> List[DeliveryOutcome]:
        if not self.targets:
            return []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            outcomes = await asyncio.gather(
                *(self._deliver(client, label, url, message) for label, url in self.targets.items())
            )

        delivered = sum(1 for o in outcomes if o.ok)
        logger.info(f"Forwarded incoming message to {delivered}/{len(outcomes)} webhook(s)")
        return list(outcomes)

    async def _deliver(
        self, client: httpx.AsyncClient, label: str, url: str, message: Message
    ) -> DeliveryOutcome:
        payload = message.to_payload()
        payload.pop("raw", None)
        payload["number"] = display_form(message.from_)
        payload["source"] = TARGET_SOURCES.get(label, Source.WEBHOOK_PROD).value

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Failed send to {label.upper()} webhook: HTTP {e.response.status_code}")
            return DeliveryOutcome(label, url, False, status_code=e.response.status_code, error=str(e))
        except httpx.HTTPError as e:
            logger.warning(f"Failed send to {label.upper()} webhook: {e!r}")
            return DeliveryOutcome(label, url, False, error=repr(e))

        return DeliveryOutcome(label, url, True, status_code=response.status_code)
