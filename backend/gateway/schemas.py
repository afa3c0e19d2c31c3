import time
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class Source(str, Enum):
    WEB_UI = "WEB_UI"
    WEBHOOK_TEST = "WEBHOOK_TEST"
    WEBHOOK_PROD = "WEBHOOK_PROD"
    INBOUND = "inbound"


class Status(str, Enum):
    QR_RECEIVED = "QR_RECEIVED"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    AUTH_FAILURE = "AUTH_FAILURE"
    SESSION_RESET = "SESSION_RESET"
    LOGS_CLEARED = "LOGS_CLEARED"


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_QR = "awaiting_qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILED = "auth_failed"
    RESETTING = "resetting"


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    direction: Direction
    from_: str = Field(alias="from")
    to: str
    body: str
    external_id: Optional[str] = None
    is_group: bool = False
    source: Source
    timestamp: int  # seconds since epoch
    raw: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SendRequest(BaseModel):
    number: Optional[Union[str, int]] = None
    message: Optional[str] = None


class WebhookSendRequest(SendRequest):
    token: Optional[str] = None


class SessionSnapshot(BaseModel):
    state: ConnectionState
    ready: bool
    qr: Optional[str] = None


def now_seconds() -> int:
    return int(time.time())


def to_seconds(value) -> int:
    """Coerce an epoch timestamp in seconds or milliseconds to seconds."""
    if value is None or value == "":
        return now_seconds()
    try:
        value = int(float(value))
    except (TypeError, ValueError):
        return now_seconds()
    # anything past the year 5138 in seconds is a millisecond value
    if value > 10 ** 11:
        value //= 1000
    return value
