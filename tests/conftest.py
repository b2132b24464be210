"""
Shared fixtures: a scriptable stub transport, a recording event sink, a
controllable clock and fast session settings.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from session_gateway.core.logger import get_logger
from session_gateway.domain.interfaces.events import IEventPublisher
from session_gateway.domain.models.events import EventEnvelope
from session_gateway.domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from session_gateway.domain.services.session_registry import SessionRegistry
from session_gateway.infrastructure.config.settings import SessionSettings
from session_gateway.infrastructure.persistence.metadata_store import FileMetadataStore
from session_gateway.infrastructure.transports.base import CallbackTransportClient

Step = Tuple[float, Tuple[Any, ...]]


class StubTransport(CallbackTransportClient):
    """
    Transport whose callbacks follow a script of (delay, action) steps once
    connect() is called.

    Actions: ("credential", token), ("connected", account_id, display_name),
    ("disconnected", reason), ("message", message), ("status", update)
    """

    def __init__(self, session_id: str, script: Sequence[Step] = (), connect_error: Exception = None):
        super().__init__(session_id, get_logger("stub_transport"))
        self.script = list(script)
        self.connect_error = connect_error
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.sent: List[Dict[str, Any]] = []
        self.send_error: Optional[Exception] = None
        self._task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error:
            raise self.connect_error
        self._task = asyncio.create_task(self._play())

    async def _play(self) -> None:
        for delay, action in self.script:
            await asyncio.sleep(delay)
            self.fire(*action)

    def fire(self, kind: str, *args: Any) -> None:
        if kind == "credential":
            self._emit_credential(*args)
        elif kind == "connected":
            self._emit_connected(*args)
        elif kind == "disconnected":
            self._emit_disconnected(*args)
        elif kind == "message":
            self._emit_message(*args)
        elif kind == "status":
            self._emit_message_status(*args)
        else:
            raise ValueError(kind)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._task and not self._task.done():
            self._task.cancel()
        self._emit_disconnected("client disconnect")

    async def send(self, message: Dict[str, Any]) -> str:
        if self.send_error:
            raise self.send_error
        self.sent.append(message)
        return f"stub_{len(self.sent)}"


class StubTransportFactory:
    """
    Builds StubTransports. ``scripts`` maps the n-th client built for a session
    (0-based) to its script; missing entries use ``default_script``.
    """

    def __init__(self, default_script: Sequence[Step] = (), scripts: Dict[int, Sequence[Step]] = None,
                 connect_errors: Dict[int, Exception] = None):
        self.default_script = list(default_script)
        self.scripts = scripts or {}
        self.connect_errors = connect_errors or {}
        self.clients: List[StubTransport] = []

    def __call__(self, session_id: str) -> StubTransport:
        index = len([c for c in self.clients if c.session_id == session_id])
        client = StubTransport(
            session_id,
            self.scripts.get(index, self.default_script),
            connect_error=self.connect_errors.get(index),
        )
        self.clients.append(client)
        return client

    def clients_for(self, session_id: str) -> List[StubTransport]:
        return [c for c in self.clients if c.session_id == session_id]

    @property
    def total_connect_calls(self) -> int:
        return sum(c.connect_calls for c in self.clients)


class RecordingPublisher(IEventPublisher):

    def __init__(self):
        self.envelopes: List[EventEnvelope] = []

    def publish(self, envelope: EventEnvelope) -> None:
        self.envelopes.append(envelope)

    def event_types(self) -> List[str]:
        return [e.event_type.value for e in self.envelopes]


class FakeClock:

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate()`` holds; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def session_settings():
    return SessionSettings(
        credential_ttl_seconds=60,
        creation_timeout_seconds=0.5,
        refresh_timeout_seconds=0.3,
        strict_refresh_timeout=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def store(tmp_path):
    return FileMetadataStore(str(tmp_path / "data"))


@pytest.fixture
def make_orchestrator(store, publisher, session_settings, clock):
    """Build an orchestrator over a given stub factory."""

    def _make(factory: StubTransportFactory, settings: SessionSettings = None) -> LifecycleOrchestrator:
        orchestrator = LifecycleOrchestrator(
            registry=SessionRegistry(),
            store=store,
            publisher=publisher,
            transport_factory=factory,
            settings=settings or session_settings,
            clock=clock,
        )
        return orchestrator

    return _make
