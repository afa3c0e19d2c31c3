import hmac
import logging
from typing import Optional

from .broadcaster import LiveBroadcaster
from .errors import NotReadyError, StoreError, UnauthorizedError, ValidationError
from .models import MessageStore
from .numbers import DEFAULT_COUNTRY_CODE, display_form, is_group, normalize
from .schemas import Direction, Message, Source, now_seconds
from .session import SessionManager

logger = logging.getLogger(__name__)


class OutboundDispatcher:
    """Single send path shared by the web UI and both webhook endpoints."""

    def __init__(
        self,
        session: SessionManager,
        store: MessageStore,
        broadcaster: LiveBroadcaster,
        token: Optional[str] = None,
        token_policy: str = "strict",
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self.session = session
        self.store = store
        self.broadcaster = broadcaster
        self.token = token
        self.token_policy = token_policy
        self.country_code = country_code

    def _check_token(self, source: Source, supplied: Optional[str]):
        if not self.token or source == Source.WEB_UI:
            return
        if supplied and hmac.compare_digest(str(supplied).encode(), self.token.encode()):
            return
        if self.token_policy == "strict":
            logger.warning(f"Unauthorized {source.value} request")
            raise UnauthorizedError("Unauthorized: Invalid token")
        logger.warning(f"{source.value} request with invalid token allowed (permissive policy)")

    async def dispatch(self, number, body, source: Source, token: Optional[str] = None) -> Message:
        self._check_token(source, token)

        if number is None or not str(number).strip() or body is None or not str(body).strip():
            raise ValidationError("Number and message are required")

        if not self.session.is_ready:
            raise NotReadyError()

        chat_id = normalize(number, self.country_code)
        external_id = await self.session.send(chat_id, body)

        message = Message(
            direction=Direction.OUTGOING,
            from_="me",
            to=chat_id,
            body=body,
            external_id=external_id,
            is_group=is_group(chat_id),
            source=source,
            timestamp=now_seconds(),
            raw={"number": str(number), "message": body},
        )

        try:
            await self.store.append(message)
        except StoreError as e:
            logger.error(f"Could not store outgoing message {external_id}: {e}")

        try:
            await self.broadcaster.publish_message(message)
        except Exception as e:
            logger.error(f"Could not broadcast outgoing message {external_id}: {e}")
        logger.info(f"[{source.value}] {display_form(chat_id)}: {body!r}")
        return message
