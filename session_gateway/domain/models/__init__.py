from .session import (
    Session,
    SessionState,
    MetadataRecord,
    VALID_STATE_TRANSITIONS,
    is_valid_transition,
)
from .events import (
    EventType,
    EventEnvelope,
    MESSAGE_STATUS_EVENTS,
    event_type_for_status,
    CredentialIssued,
    Connected,
    Disconnected,
    MessageReceived,
    StatusUpdate,
    TransportEvent,
)
from .message import OutboundMessage, SendResult, validate_outbound_message

__all__ = [
    'Session',
    'SessionState',
    'MetadataRecord',
    'VALID_STATE_TRANSITIONS',
    'is_valid_transition',
    'EventType',
    'EventEnvelope',
    'MESSAGE_STATUS_EVENTS',
    'event_type_for_status',
    'CredentialIssued',
    'Connected',
    'Disconnected',
    'MessageReceived',
    'StatusUpdate',
    'TransportEvent',
    'OutboundMessage',
    'SendResult',
    'validate_outbound_message',
]
