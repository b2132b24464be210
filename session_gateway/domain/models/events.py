"""
Event Models
============
Two families of events flow through the gateway:

- Transport events: tagged variants produced from a transport client's callbacks
  and consumed, in order, by that handle's pump task.
- Event envelopes: the normalized record handed to the event dispatcher.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class EventType(str, Enum):
    """Event types delivered to the webhook target"""
    SESSION_CONNECTED = "session.connected"
    SESSION_DISCONNECTED = "session.disconnected"
    MESSAGE_RECEIVED = "message.received"
    MESSAGE_SENT = "message.sent"
    MESSAGE_DELIVERED = "message.delivered"
    MESSAGE_READ = "message.read"


# Transport status code -> event type. Every other code reports as sent.
MESSAGE_STATUS_EVENTS: Dict[int, EventType] = {
    3: EventType.MESSAGE_DELIVERED,  # delivery ack
    4: EventType.MESSAGE_READ,
}


def event_type_for_status(status: Any) -> EventType:
    try:
        return MESSAGE_STATUS_EVENTS.get(int(status), EventType.MESSAGE_SENT)
    except (TypeError, ValueError):
        return EventType.MESSAGE_SENT


# === TRANSPORT EVENTS ===

@dataclass(frozen=True)
class CredentialIssued:
    token: str


@dataclass(frozen=True)
class Connected:
    account_id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Disconnected:
    reason: Any = None


@dataclass(frozen=True)
class MessageReceived:
    message: Any


@dataclass(frozen=True)
class StatusUpdate:
    update: Any


TransportEvent = Union[CredentialIssued, Connected, Disconnected, MessageReceived, StatusUpdate]


# === DELIVERY ENVELOPE ===

def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True)
class EventEnvelope:
    """
    Normalized event for the delivery target.

    ``origin`` is the account id when known, else the session id, and is never
    empty.
    """
    session_id: str
    origin: str
    event_type: EventType
    payload: Any = None
    timestamp: int = field(default_factory=_now_ms)

    def __post_init__(self):
        if not self.origin:
            raise ValueError(f"Event {self.event_type} for session {self.session_id} has empty origin")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "origin": self.origin,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }
