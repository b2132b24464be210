"""
Session Lifecycle Models
========================

Provides:
- SessionState enum with explicit lifecycle states
- Session snapshot (immutable; the registry swaps whole snapshots)
- MetadataRecord, the durable subset used for restart recovery
- Valid transition table
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SessionState(str, Enum):
    """
    Session lifecycle states.

    State Machine:
        [INITIALIZING] ──► [CONNECTING] ──credential──► [CREDENTIAL_WAITING] ◄─┐ re-issue
                               │   ▲                        │      │           │
                               │   └────────refresh─────────┘      └───────────┘
                               ▼                            ▼
                          [CONNECTED] ◄─────────────────────┘
                               │
          any state ──────► [DISCONNECTED] ──reconnect──► [CONNECTING]
    """
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    CREDENTIAL_WAITING = "credential_waiting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


VALID_STATE_TRANSITIONS = {
    SessionState.INITIALIZING: {SessionState.CONNECTING, SessionState.DISCONNECTED},
    SessionState.CONNECTING: {
        SessionState.CREDENTIAL_WAITING,
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
    },
    SessionState.CREDENTIAL_WAITING: {
        SessionState.CREDENTIAL_WAITING,  # credential re-issued by the transport
        SessionState.CONNECTING,          # refresh of an expired credential
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
    },
    SessionState.CONNECTED: {SessionState.CONNECTED, SessionState.DISCONNECTED},
    SessionState.DISCONNECTED: {
        SessionState.CONNECTING,          # explicit reconnect
        SessionState.CREDENTIAL_WAITING,  # resumed handle after restart needs a new scan
        SessionState.CONNECTED,           # resumed handle after restart
        SessionState.DISCONNECTED,
    },
}


def is_valid_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if a state transition is allowed."""
    return to_state in VALID_STATE_TRANSITIONS.get(from_state, set())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Session:
    """
    Point-in-time view of one session.

    Instances are never mutated; ``evolve`` returns a changed copy and checks
    the field invariants.
    """
    id: str
    state: SessionState
    created_at: datetime
    account_id: Optional[str] = None
    display_name: Optional[str] = None
    credential: Optional[str] = None
    credential_expires_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    last_disconnected_at: Optional[datetime] = None

    def __post_init__(self):
        if (self.credential is None) != (self.credential_expires_at is None):
            raise ValueError(f"Session {self.id}: credential and credential_expires_at must be set together")
        if self.state == SessionState.CONNECTED and not self.account_id:
            raise ValueError(f"Session {self.id}: connected session requires account_id")
        if self.state == SessionState.CREDENTIAL_WAITING and self.credential is None:
            raise ValueError(f"Session {self.id}: credential_waiting session requires a credential")

    def evolve(self, **changes: Any) -> 'Session':
        return replace(self, **changes)

    @property
    def origin(self) -> str:
        """Cross-session identifier for event consumers: account id when known."""
        return self.account_id or self.id

    def credential_expired(self, now: datetime) -> bool:
        return self.credential_expires_at is not None and now >= self.credential_expires_at

    def needs_refresh(self, now: datetime) -> bool:
        return self.state == SessionState.CREDENTIAL_WAITING and self.credential_expired(now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "state": self.state.value,
            "account_id": self.account_id,
            "display_name": self.display_name,
            "credential": self.credential,
            "credential_expires_at": _iso(self.credential_expires_at),
            "created_at": _iso(self.created_at),
            "connected_at": _iso(self.connected_at),
            "last_disconnected_at": _iso(self.last_disconnected_at),
        }

    def to_record(self) -> 'MetadataRecord':
        return MetadataRecord(
            id=self.id,
            account_id=self.account_id,
            display_name=self.display_name,
            created_at=self.created_at,
            connected_at=self.connected_at,
            last_disconnected_at=self.last_disconnected_at,
        )


@dataclass
class MetadataRecord:
    """Durable, non-secret subset of a Session."""
    id: str
    created_at: datetime
    account_id: Optional[str] = None
    display_name: Optional[str] = None
    connected_at: Optional[datetime] = None
    last_disconnected_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "account_id": self.account_id,
            "display_name": self.display_name,
            "created_at": _iso(self.created_at),
            "connected_at": _iso(self.connected_at),
            "last_disconnected_at": _iso(self.last_disconnected_at),
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MetadataRecord':
        known = {"id", "account_id", "display_name", "created_at", "connected_at", "last_disconnected_at"}

        def parse(key: str) -> Optional[datetime]:
            raw = data.get(key)
            return datetime.fromisoformat(raw) if raw else None

        return cls(
            id=data["id"],
            account_id=data.get("account_id"),
            display_name=data.get("display_name"),
            created_at=parse("created_at"),
            connected_at=parse("connected_at"),
            last_disconnected_at=parse("last_disconnected_at"),
            extra={k: v for k, v in data.items() if k not in known},
        )
