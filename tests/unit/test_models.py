"""
Domain Model Unit Tests
=======================
Session invariants, transition table, event envelope and outbound message
validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from session_gateway.core.exceptions import MessageValidationError
from session_gateway.domain.models.events import (
    EventEnvelope,
    EventType,
    event_type_for_status,
)
from session_gateway.domain.models.message import validate_outbound_message
from session_gateway.domain.models.session import (
    MetadataRecord,
    Session,
    SessionState,
    is_valid_transition,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestSessionInvariants:
    """Snapshots refuse field combinations that break the invariants."""

    def test_credential_requires_expiry(self):
        with pytest.raises(ValueError):
            Session(id="s1", state=SessionState.CONNECTING, created_at=NOW, credential="Q1")

    def test_connected_requires_account(self):
        with pytest.raises(ValueError):
            Session(id="s1", state=SessionState.CONNECTED, created_at=NOW)

    def test_credential_waiting_requires_credential(self):
        with pytest.raises(ValueError):
            Session(id="s1", state=SessionState.CREDENTIAL_WAITING, created_at=NOW)

    def test_evolve_returns_new_snapshot(self):
        session = Session(id="s1", state=SessionState.CONNECTING, created_at=NOW)

        evolved = session.evolve(state=SessionState.CONNECTED, account_id="1555")

        assert evolved.state == SessionState.CONNECTED
        assert session.state == SessionState.CONNECTING

    def test_needs_refresh_only_when_waiting_and_expired(self):
        session = Session(
            id="s1",
            state=SessionState.CREDENTIAL_WAITING,
            created_at=NOW,
            credential="Q1",
            credential_expires_at=NOW + timedelta(seconds=60),
        )

        assert not session.needs_refresh(NOW + timedelta(seconds=59))
        assert session.needs_refresh(NOW + timedelta(seconds=60))

    def test_origin_prefers_account_id(self):
        anonymous = Session(id="s1", state=SessionState.CONNECTING, created_at=NOW)
        known = anonymous.evolve(account_id="1555")

        assert anonymous.origin == "s1"
        assert known.origin == "1555"

    def test_to_dict_serializes_timestamps(self):
        session = Session(id="s1", state=SessionState.CONNECTING, created_at=NOW)

        data = session.to_dict()

        assert data["state"] == "connecting"
        assert data["created_at"] == NOW.isoformat()
        assert data["credential"] is None


class TestStateTransitions:

    def test_lifecycle_path_is_valid(self):
        path = [
            SessionState.INITIALIZING,
            SessionState.CONNECTING,
            SessionState.CREDENTIAL_WAITING,
            SessionState.CONNECTING,
            SessionState.CREDENTIAL_WAITING,
            SessionState.CONNECTED,
            SessionState.DISCONNECTED,
            SessionState.CONNECTING,
        ]
        for current, following in zip(path, path[1:]):
            assert is_valid_transition(current, following), (current, following)

    def test_connected_cannot_go_back_to_credential(self):
        assert not is_valid_transition(SessionState.CONNECTED, SessionState.CREDENTIAL_WAITING)
        assert not is_valid_transition(SessionState.CONNECTED, SessionState.CONNECTING)

    def test_every_state_can_disconnect(self):
        for state in SessionState:
            assert is_valid_transition(state, SessionState.DISCONNECTED)


class TestMetadataRecord:

    def test_from_dict_keeps_unknown_fields(self):
        record = MetadataRecord.from_dict({
            "id": "s1",
            "created_at": NOW.isoformat(),
            "account_id": "1555",
            "legacy_flag": True,
        })

        assert record.created_at == NOW
        assert record.connected_at is None
        assert record.extra == {"legacy_flag": True}
        assert record.to_dict()["legacy_flag"] is True


class TestEvents:

    @pytest.mark.parametrize("status,expected", [
        (0, EventType.MESSAGE_SENT),
        (1, EventType.MESSAGE_SENT),
        (2, EventType.MESSAGE_SENT),
        (3, EventType.MESSAGE_DELIVERED),
        (4, EventType.MESSAGE_READ),
        (5, EventType.MESSAGE_SENT),
        ("3", EventType.MESSAGE_DELIVERED),
        (7, EventType.MESSAGE_SENT),
        (None, EventType.MESSAGE_SENT),
    ])
    def test_status_table(self, status, expected):
        assert event_type_for_status(status) == expected

    def test_envelope_requires_origin(self):
        with pytest.raises(ValueError):
            EventEnvelope(session_id="s1", origin="", event_type=EventType.SESSION_CONNECTED)

    def test_envelope_serialization(self):
        envelope = EventEnvelope(
            session_id="s1",
            origin="1555",
            event_type=EventType.MESSAGE_RECEIVED,
            payload={"text": "hi"},
            timestamp=1700000000000,
        )

        assert envelope.to_dict() == {
            "session_id": "s1",
            "origin": "1555",
            "event_type": "message.received",
            "timestamp": 1700000000000,
            "payload": {"text": "hi"},
        }


class TestOutboundMessageValidation:

    def test_text_message(self):
        message = validate_outbound_message({"to": "1555", "type": "text", "text": "hello"})

        assert message.to_transport() == {"to": "1555", "type": "text", "text": "hello"}

    @pytest.mark.parametrize("payload,fragment", [
        ({"to": "1555", "type": "text"}, "Text is required"),
        ({"to": "1555", "type": "image"}, "Media URL or base64"),
        ({"to": "1555", "type": "document", "media_url": "https://x/f.pdf"}, "File name"),
        ({"to": "1555", "type": "location", "latitude": 1.0}, "Latitude and longitude"),
        ({"to": "1555", "type": "contact", "contact_name": "Bob"}, "Contact name and number"),
        ({"to": "1555", "type": "sticker"}, "type"),
        ({"type": "text", "text": "hi"}, "to"),
    ])
    def test_invalid_messages(self, payload, fragment):
        with pytest.raises(MessageValidationError) as exc_info:
            validate_outbound_message(payload)

        assert fragment in str(exc_info.value)

    def test_media_with_base64(self):
        message = validate_outbound_message({
            "to": "1555", "type": "image", "media_base64": "aGk=", "caption": "pic"
        })

        assert message.caption == "pic"

    def test_non_dict_body_rejected(self):
        with pytest.raises(MessageValidationError):
            validate_outbound_message(["not", "a", "dict"])
