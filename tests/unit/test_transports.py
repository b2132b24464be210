"""
Transport Client Unit Tests
===========================
Simulated transport timing and resume behaviour, bridge frame mapping over a
fake WebSocket, and factory selection.
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import wait_until
from session_gateway.infrastructure.config.settings import TransportMode, TransportSettings
from session_gateway.infrastructure.persistence.metadata_store import FileMetadataStore
from session_gateway.infrastructure.transports.bridge_transport import BridgeTransportClient
from session_gateway.infrastructure.transports.factory import TransportClientFactory
from session_gateway.infrastructure.transports.simulated_transport import SimulatedTransportClient


def attach_recorder(client):
    events = []
    client.on_credential(lambda token: events.append(("credential", token)))
    client.on_connected(lambda account_id, name: events.append(("connected", account_id, name)))
    client.on_disconnected(lambda reason: events.append(("disconnected", reason)))
    client.on_message(lambda message: events.append(("message", message)))
    client.on_message_status(lambda update: events.append(("status", update)))
    return events


@pytest.fixture
def fast_settings():
    return TransportSettings(
        mode=TransportMode.SIMULATED,
        simulated_credential_delay_seconds=0.01,
        simulated_connect_delay_seconds=0.02,
    )


class TestSimulatedTransport:

    @pytest.mark.asyncio
    async def test_credential_then_connected_and_material_saved(self, store, fast_settings):
        client = SimulatedTransportClient("s1", store, fast_settings)
        events = attach_recorder(client)

        await client.connect()
        await wait_until(lambda: len(events) == 2)

        assert events[0][0] == "credential"
        assert events[0][1].startswith("SIM-QR:s1:")
        assert events[1] == ("connected", "1234567890", "Test User")
        assert await store.load_credential_material("s1") == {
            "account_id": "1234567890", "display_name": "Test User", "simulated": True
        }

    @pytest.mark.asyncio
    async def test_resumes_straight_to_connected_with_material(self, store, fast_settings):
        await store.save_credential_material("s1", {"account_id": "1555", "display_name": "Alice"})
        client = SimulatedTransportClient("s1", store, fast_settings)
        events = attach_recorder(client)

        await client.connect()
        await wait_until(lambda: len(events) == 1)

        assert events == [("connected", "1555", "Alice")]

    @pytest.mark.asyncio
    async def test_never_connects_without_connect_delay(self, store):
        settings = TransportSettings(simulated_credential_delay_seconds=0.0, simulated_connect_delay_seconds=None)
        client = SimulatedTransportClient("s1", store, settings)
        events = attach_recorder(client)

        await client.connect()
        await asyncio.sleep(0.05)

        assert [e[0] for e in events] == ["credential"]
        assert not await store.credential_material_exists("s1")
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_emits_disconnected(self, store, fast_settings):
        client = SimulatedTransportClient("s1", store, fast_settings)
        events = attach_recorder(client)

        await client.connect()
        await client.disconnect()

        assert events == [("disconnected", "client disconnect")]

    @pytest.mark.asyncio
    async def test_send_requires_connection(self, store, fast_settings):
        client = SimulatedTransportClient("s1", store, fast_settings)
        events = attach_recorder(client)

        with pytest.raises(ConnectionError):
            await client.send({"to": "1555", "type": "text", "text": "hi"})

        await client.connect()
        await wait_until(lambda: any(e[0] == "connected" for e in events))
        message_id = await client.send({"to": "1555", "type": "text", "text": "hi"})

        assert message_id.startswith("sim_")
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged_not_raised(self, store):
        settings = TransportSettings(simulated_credential_delay_seconds=0.0, simulated_connect_delay_seconds=None)
        client = SimulatedTransportClient("s1", store, settings)
        client.on_credential(Mock(side_effect=RuntimeError("handler bug")))

        await client.connect()
        await asyncio.sleep(0.02)

        assert client._task.done()
        assert client._task.exception() is None


class FakeWebSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def push(self, frame):
        self.incoming.put_nowait(json.dumps(frame))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


@pytest.fixture
def bridge_settings():
    return TransportSettings(mode=TransportMode.BRIDGE, bridge_url="ws://bridge.test:8085", bridge_send_timeout_seconds=1)


class TestBridgeTransport:

    @pytest.mark.asyncio
    async def test_connect_sends_hello_with_stored_material(self, store, bridge_settings):
        await store.save_credential_material("s1", {"keys": "secret"})
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)) as connect:
            await client.connect()

        assert connect.await_args.args[0] == "ws://bridge.test:8085/sessions/s1"
        assert fake.sent == [{"type": "hello", "session_id": "s1", "credentials": {"keys": "secret"}}]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_inbound_frames_map_to_callbacks(self, store, bridge_settings):
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)
        events = attach_recorder(client)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)):
            await client.connect()

        fake.push({"type": "credential", "token": "Q1"})
        fake.push({"type": "credentials_update", "credentials": {"keys": "new"}})
        fake.push({"type": "connected", "account_id": "1555", "display_name": "Alice"})
        fake.push({"type": "message", "message": {"text": "hi"}})
        fake.push({"type": "message_status", "update": {"message_id": "m1", "status": 3}})
        fake.push({"type": "bogus"})
        await wait_until(lambda: len(events) == 4)

        assert events == [
            ("credential", "Q1"),
            ("connected", "1555", "Alice"),
            ("message", {"text": "hi"}),
            ("status", {"message_id": "m1", "status": 3}),
        ]
        assert await store.load_credential_material("s1") == {"keys": "new"}
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_failed_material_save_keeps_reading(self, store, bridge_settings):
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)
        events = attach_recorder(client)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)):
            await client.connect()

        with patch.object(store, "save_credential_material", new=AsyncMock(side_effect=OSError("disk full"))):
            fake.push({"type": "credentials_update", "credentials": {"keys": "new"}})
            fake.push({"type": "connected", "account_id": "1555", "display_name": "Alice"})
            await wait_until(lambda: len(events) == 1)

        assert events == [("connected", "1555", "Alice")]
        assert not client._reader_task.done()
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_send_awaits_correlated_result(self, store, bridge_settings):
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)):
            await client.connect()

        send_task = asyncio.create_task(client.send({"to": "1555", "type": "text", "text": "hi"}))
        await wait_until(lambda: len(fake.sent) == 2)
        request = fake.sent[1]
        fake.push({"type": "send_result", "request_id": request["request_id"], "message_id": "wamid.1"})

        assert await send_task == "wamid.1"
        assert request["message"] == {"to": "1555", "type": "text", "text": "hi"}
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_send_error_result_raises(self, store, bridge_settings):
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)):
            await client.connect()

        send_task = asyncio.create_task(client.send({"to": "1555", "type": "text", "text": "hi"}))
        await wait_until(lambda: len(fake.sent) == 2)
        fake.push({"type": "send_result", "request_id": fake.sent[1]["request_id"], "error": "not on network"})

        with pytest.raises(RuntimeError, match="not on network"):
            await send_task
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_server_close_emits_single_disconnect(self, store, bridge_settings):
        fake = FakeWebSocket()
        client = BridgeTransportClient("s1", store, bridge_settings)
        events = attach_recorder(client)

        with patch("session_gateway.infrastructure.transports.bridge_transport.websockets.connect",
                   new=AsyncMock(return_value=fake)):
            await client.connect()

        fake.push({"type": "disconnected", "reason": "logged out"})
        fake.incoming.put_nowait(None)
        await wait_until(lambda: client._reader_task.done())
        await client.disconnect()

        assert events == [("disconnected", "logged out")]


class TestTransportFactory:

    def test_builds_client_for_mode(self, store, fast_settings, bridge_settings):
        simulated = TransportClientFactory(fast_settings, store)
        bridge = TransportClientFactory(bridge_settings, store)

        assert isinstance(simulated("s1"), SimulatedTransportClient)
        assert isinstance(bridge("s1"), BridgeTransportClient)
        assert simulated.created_count == 1

    def test_bridge_mode_requires_ws_url(self):
        with pytest.raises(ValueError):
            TransportSettings(mode=TransportMode.BRIDGE, bridge_url="http://bridge.test")
