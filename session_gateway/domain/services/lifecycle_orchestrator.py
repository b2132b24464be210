"""
Lifecycle Orchestrator - Session lifecycle and event fan-out
============================================================
Drives every session through its state machine on top of an event-driven
transport:

- One transport client per active session, wrapped in a TransportLink.
  Client callbacks are turned into tagged events on the link's queue and
  applied in order by the link's pump task.
- Each event is applied under the session's lock: registry snapshot first,
  then the metadata record, then the event envelope is published.
- Blocking operations (create, refresh-on-read, reconnect) wait on the
  registry with wall-clock bounds.
- Credential refresh is read-triggered and single-flight per session.
- Startup recovery re-admits persisted sessions and resumes their transports.

Usage:
    orchestrator = LifecycleOrchestrator(registry, store, dispatcher, transport_factory, settings)
    await orchestrator.start()
    session = await orchestrator.create_session()
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ...core.exceptions import (
    SessionNotConnectedError,
    SessionNotFoundError,
    SessionTimeoutError,
    TransportFailureError,
)
from ...core.logger import StructuredLogger, get_logger
from ..interfaces.events import IEventPublisher
from ..interfaces.storage import IMetadataStore
from ..interfaces.transport import ITransportClient, TransportFactory
from ..models.events import (
    Connected,
    CredentialIssued,
    Disconnected,
    EventEnvelope,
    EventType,
    MessageReceived,
    StatusUpdate,
    TransportEvent,
    event_type_for_status,
)
from ..models.message import OutboundMessage, SendResult, validate_outbound_message
from ..models.session import Session, SessionState
from .session_registry import SessionEntry, SessionRegistry
from .single_flight import SingleFlight

_STOP = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _settled(session: Session) -> bool:
    """Credential present, connected or disconnected: a blocking caller can return."""
    return session.credential is not None or session.state in (
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
    )


class TransportLink:
    """
    One transport client and the ordered channel its callbacks feed.

    Once retired, callbacks are ignored and the pump stops.
    """

    def __init__(self, session_id: str, client: ITransportClient):
        self.session_id = session_id
        self.client = client
        self.queue: asyncio.Queue = asyncio.Queue()
        self.retired = False
        self.pump_task: Optional[asyncio.Task] = None

        client.on_credential(lambda token: self.emit(CredentialIssued(token)))
        client.on_connected(
            lambda account_id, display_name=None: self.emit(Connected(account_id, display_name))
        )
        client.on_disconnected(lambda reason=None: self.emit(Disconnected(reason)))
        client.on_message(lambda message: self.emit(MessageReceived(message)))
        client.on_message_status(lambda update: self.emit(StatusUpdate(update)))

    def emit(self, event: TransportEvent) -> None:
        if not self.retired:
            self.queue.put_nowait(event)

    def retire(self) -> None:
        if not self.retired:
            self.retired = True
            self.queue.put_nowait(_STOP)


class LifecycleOrchestrator:
    """
    Core coordinator between the HTTP layer, the session registry, transports,
    the metadata store and the event dispatcher.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: IMetadataStore,
        publisher: IEventPublisher,
        transport_factory: TransportFactory,
        settings: Any,
        logger: Optional[StructuredLogger] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            registry: In-memory session authority, shared with the HTTP layer
            store: Metadata and credential material persistence
            publisher: Event sink (normally the EventDispatcher)
            transport_factory: Builds a fresh client for a session id
            settings: SessionSettings (credential TTL and wait bounds)
            logger: Optional logger override
            clock: Optional time source returning aware UTC datetimes
        """
        self.registry = registry
        self.store = store
        self.publisher = publisher
        self.transport_factory = transport_factory
        self.settings = settings
        self.logger = logger or get_logger("lifecycle_orchestrator")
        self._clock = clock or _utcnow

        self._links: Dict[str, TransportLink] = {}
        self._refreshes = SingleFlight()

    # === Public operations ===

    async def create_session(self, session_id: Optional[str] = None) -> Session:
        """
        Create a session and block until it has a credential, connects,
        disconnects or the creation timeout elapses.

        Raises:
            SessionAlreadyExistsError: Id already live (existing session untouched)
            TransportFailureError: Transport connect() failed; nothing is left behind
            SessionTimeoutError: Nothing happened in time; nothing is left behind
        """
        session_id = session_id or str(uuid.uuid4())
        self.registry.create(session_id, self._clock())
        self.logger.info("lifecycle_orchestrator.session_created", {"session_id": session_id})

        async with self.registry.locked(session_id) as entry:
            await self._persist(entry.snapshot)
            self.registry.apply_transition(entry, SessionState.CONNECTING)
            link = self._start_link(session_id)

        try:
            await link.client.connect()
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.create_connect_failed", {
                "session_id": session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            await self._discard(session_id)
            raise TransportFailureError(session_id, "connect", e) from e

        timeout = self.settings.creation_timeout_seconds
        try:
            return await self.registry.wait_for(session_id, _settled, timeout)
        except asyncio.TimeoutError:
            self.logger.warning("lifecycle_orchestrator.create_timeout", {
                "session_id": session_id,
                "timeout": timeout
            })
            await self._discard(session_id)
            raise SessionTimeoutError(session_id, "create", timeout)

    async def get_session(self, session_id: str) -> Session:
        """
        Current snapshot. An expired credential is regenerated first, with
        concurrent readers sharing one regeneration.

        Raises:
            SessionNotFoundError
            SessionTimeoutError: Refresh timed out and strict_refresh_timeout is set
        """
        session = self.registry.get(session_id)
        refreshing = self._refreshes.in_flight(session_id)
        if not refreshing and not session.needs_refresh(self._clock()):
            return session
        return await self._refreshes.run(session_id, lambda: self._regenerate(session_id))

    def list_sessions(self) -> List[Session]:
        return self.registry.list()

    async def delete_session(self, session_id: str) -> bool:
        """
        Terminate a session from any state: transport handle, metadata
        record, credential material and registry entry.

        Raises:
            SessionNotFoundError
        """
        async with self.registry.locked(session_id) as entry:
            link = self._links.get(session_id)
            if link is not None:
                await self._retire_link(link, disconnect=True)
            await self.store.remove(session_id)
            await self.store.delete_credential_material(session_id)
            self.registry.remove(entry)

        self.logger.info("lifecycle_orchestrator.session_deleted", {"session_id": session_id})
        return True

    async def send_message(
        self,
        session_id: str,
        message: Union[OutboundMessage, Dict[str, Any]]
    ) -> SendResult:
        """
        Send through a connected session.

        Raises:
            SessionNotFoundError
            MessageValidationError: Malformed message
            SessionNotConnectedError: Session not connected or has no transport
            TransportFailureError: Transport send failed
        """
        session = self.registry.get(session_id)
        if not isinstance(message, OutboundMessage):
            message = validate_outbound_message(message)

        link = self._links.get(session_id)
        if session.state != SessionState.CONNECTED or link is None or link.retired:
            raise SessionNotConnectedError(session_id, session.state.value)

        try:
            message_id = await link.client.send(message.to_transport())
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.send_failed", {
                "session_id": session_id,
                "to": message.to,
                "error": str(e),
                "error_type": type(e).__name__
            })
            raise TransportFailureError(session_id, "send", e) from e

        self.logger.info("lifecycle_orchestrator.message_sent", {
            "session_id": session_id,
            "message_id": message_id,
            "type": message.type
        })
        return SendResult(message_id=message_id)

    async def reconnect_session(self, session_id: str) -> Session:
        """
        Restart a disconnected session with a new transport handle. Sessions in
        any other state are returned unchanged.

        On timeout the attempt is abandoned and the session is left
        disconnected, so the call can be retried.

        Raises:
            SessionNotFoundError
            TransportFailureError
            SessionTimeoutError
        """
        async with self.registry.locked(session_id) as entry:
            if entry.snapshot.state != SessionState.DISCONNECTED:
                return entry.snapshot
            old = self._links.get(session_id)
            if old is not None:
                await self._retire_link(old, disconnect=True)
            self.registry.apply_transition(entry, SessionState.CONNECTING)
            await self._persist(entry.snapshot)
            link = self._start_link(session_id)

        self.logger.info("lifecycle_orchestrator.reconnecting", {"session_id": session_id})

        try:
            await link.client.connect()
        except Exception as e:
            await self._abandon_attempt(session_id, link, reason=f"connect failed: {e}")
            raise TransportFailureError(session_id, "connect", e) from e

        timeout = self.settings.creation_timeout_seconds
        try:
            return await self.registry.wait_for(session_id, _settled, timeout)
        except asyncio.TimeoutError:
            await self._abandon_attempt(session_id, link, reason="reconnect timeout")
            raise SessionTimeoutError(session_id, "reconnect", timeout)

    async def start(self) -> None:
        """
        Startup recovery. Records with credential material are admitted as
        disconnected and their transports resumed; orphaned records are
        deleted. One session failing never stops the others.
        """
        await self.store.initialize()
        records = await self.store.list_all()
        admitted: List[str] = []

        for record in records:
            try:
                try:
                    has_material = await self.store.credential_material_exists(record.id)
                except ValueError as e:
                    # Id unusable as a storage key; the record can never be resumed
                    self.logger.warning("lifecycle_orchestrator.invalid_record_id", {
                        "session_id": record.id,
                        "error": str(e)
                    })
                    has_material = False

                if not has_material:
                    await self.store.remove(record.id)
                    self.logger.info("lifecycle_orchestrator.orphan_record_removed", {"session_id": record.id})
                    continue

                self.registry.admit(Session(
                    id=record.id,
                    state=SessionState.DISCONNECTED,
                    created_at=record.created_at or self._clock(),
                    account_id=record.account_id,
                    display_name=record.display_name,
                    connected_at=record.connected_at,
                    last_disconnected_at=record.last_disconnected_at,
                ))
                admitted.append(record.id)
            except Exception as e:
                self.logger.error("lifecycle_orchestrator.recovery_admit_failed", {
                    "session_id": record.id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

        await asyncio.gather(*(self._resume(session_id) for session_id in admitted))

        self.logger.info("lifecycle_orchestrator.recovery_completed", {
            "records": len(records),
            "resumed": len(admitted)
        })

    async def stop(self) -> None:
        """Retire every transport handle and stop the pumps."""
        links = list(self._links.values())
        for link in links:
            await self._retire_link(link, disconnect=True)

        pumps = [link.pump_task for link in links if link.pump_task and not link.pump_task.done()]
        for task in pumps:
            task.cancel()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)

        self.logger.info("lifecycle_orchestrator.stopped", {"links_closed": len(links)})

    @property
    def refresh_count(self) -> int:
        """Number of credential regenerations started since construction"""
        return self._refreshes.runs_started

    def has_transport(self, session_id: str) -> bool:
        link = self._links.get(session_id)
        return link is not None and not link.retired

    # === Transport links ===

    def _start_link(self, session_id: str) -> TransportLink:
        """Build a client and its pump. Caller holds the session lock."""
        link = TransportLink(session_id, self.transport_factory(session_id))
        self._links[session_id] = link
        link.pump_task = asyncio.create_task(self._pump(link))
        return link

    async def _retire_link(self, link: TransportLink, disconnect: bool) -> None:
        link.retire()
        if self._links.get(link.session_id) is link:
            del self._links[link.session_id]
        if disconnect:
            await self._close_client(link)

    async def _close_client(self, link: TransportLink) -> None:
        try:
            await link.client.disconnect()
        except Exception as e:
            self.logger.warning("lifecycle_orchestrator.client_disconnect_failed", {
                "session_id": link.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })

    async def _pump(self, link: TransportLink) -> None:
        while True:
            event = await link.queue.get()
            if event is _STOP or link.retired:
                return

            close_client = False
            try:
                async with self.registry.locked(link.session_id) as entry:
                    if self._links.get(link.session_id) is not link or link.retired:
                        return
                    close_client = await self._apply_event(entry, link, event)
            except SessionNotFoundError:
                return
            except Exception as e:
                self.logger.error("lifecycle_orchestrator.event_failed", {
                    "session_id": link.session_id,
                    "event": type(event).__name__,
                    "error": str(e),
                    "error_type": type(e).__name__
                }, exc_info=True)

            if close_client:
                await self._close_client(link)
                return

    async def _apply_event(self, entry: SessionEntry, link: TransportLink, event: TransportEvent) -> bool:
        """
        Apply one transport event. Caller holds the session lock.

        Returns:
            True if the link was retired and its client should be closed
        """
        now = self._clock()
        session = entry.snapshot

        if isinstance(event, CredentialIssued):
            if self.registry.apply_transition(
                entry,
                SessionState.CREDENTIAL_WAITING,
                credential=event.token,
                credential_expires_at=now + timedelta(seconds=self.settings.credential_ttl_seconds),
            ):
                await self._persist(entry.snapshot)
                self.logger.info("lifecycle_orchestrator.credential_issued", {
                    "session_id": session.id,
                    "expires_at": entry.snapshot.credential_expires_at
                })
            return False

        if isinstance(event, Connected):
            if self.registry.apply_transition(
                entry,
                SessionState.CONNECTED,
                credential=None,
                credential_expires_at=None,
                account_id=event.account_id,
                display_name=event.display_name,
                connected_at=session.connected_at or now,
            ):
                await self._persist(entry.snapshot)
                self._publish(entry.snapshot, EventType.SESSION_CONNECTED, {
                    "account_id": event.account_id,
                    "display_name": event.display_name,
                })
            return False

        if isinstance(event, Disconnected):
            self._mark_disconnected(entry, event.reason)
            await self._persist(entry.snapshot)
            await self._retire_link(link, disconnect=False)
            return True

        if isinstance(event, MessageReceived):
            self._publish(session, EventType.MESSAGE_RECEIVED, event.message)
            return False

        if isinstance(event, StatusUpdate):
            event_type = event_type_for_status(_status_code(event.update))
            self._publish(session, event_type, event.update)
            return False

        self.logger.warning("lifecycle_orchestrator.unknown_event", {
            "session_id": session.id,
            "event": type(event).__name__
        })
        return False

    def _mark_disconnected(self, entry: SessionEntry, reason: Any) -> None:
        if self.registry.apply_transition(
            entry,
            SessionState.DISCONNECTED,
            credential=None,
            credential_expires_at=None,
            last_disconnected_at=self._clock(),
        ):
            self._publish(entry.snapshot, EventType.SESSION_DISCONNECTED, {
                "reason": None if reason is None else str(reason)
            })

    # === Refresh, resume and cleanup ===

    async def _regenerate(self, session_id: str) -> Session:
        async with self.registry.locked(session_id) as entry:
            session = entry.snapshot
            if not session.needs_refresh(self._clock()):
                return session

            stale_credential = session.credential
            stale_expires_at = session.credential_expires_at

            old = self._links.get(session_id)
            if old is not None:
                await self._retire_link(old, disconnect=True)
            self.registry.apply_transition(
                entry, SessionState.CONNECTING, credential=None, credential_expires_at=None
            )
            link = self._start_link(session_id)

        self.logger.info("lifecycle_orchestrator.credential_refresh_started", {"session_id": session_id})

        try:
            await link.client.connect()
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.credential_refresh_failed", {
                "session_id": session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            await self._abandon_attempt(session_id, link, reason=f"refresh failed: {e}")
            return self.registry.get(session_id)

        timeout = self.settings.refresh_timeout_seconds
        try:
            return await self.registry.wait_for(session_id, _settled, timeout)
        except asyncio.TimeoutError:
            async with self.registry.locked(session_id) as entry:
                current = entry.snapshot
                if current.state == SessionState.CONNECTING and current.credential is None:
                    self.registry.apply_transition(
                        entry,
                        SessionState.CREDENTIAL_WAITING,
                        credential=stale_credential,
                        credential_expires_at=stale_expires_at,
                    )
                snapshot = entry.snapshot

            self.logger.warning("lifecycle_orchestrator.credential_refresh_timeout", {
                "session_id": session_id,
                "timeout": timeout,
                "strict": self.settings.strict_refresh_timeout
            })
            if self.settings.strict_refresh_timeout:
                raise SessionTimeoutError(session_id, "refresh", timeout)
            return snapshot

    async def _abandon_attempt(self, session_id: str, link: TransportLink, reason: str) -> None:
        """Drop a connection attempt that failed or stalled; the session ends disconnected."""
        try:
            async with self.registry.locked(session_id) as entry:
                if self._links.get(session_id) is not link:
                    return
                await self._retire_link(link, disconnect=True)
                self._mark_disconnected(entry, reason)
                await self._persist(entry.snapshot)
        except SessionNotFoundError:
            await self._close_client(link)

    async def _resume(self, session_id: str) -> None:
        try:
            async with self.registry.locked(session_id):
                link = self._start_link(session_id)
            await link.client.connect()
            self.logger.info("lifecycle_orchestrator.session_resumed", {"session_id": session_id})
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.resume_failed", {
                "session_id": session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            link = self._links.get(session_id)
            if link is not None:
                await self._retire_link(link, disconnect=True)

    async def _discard(self, session_id: str) -> None:
        """Remove every trace of a session that failed to come up."""
        link = self._links.get(session_id)
        if link is not None:
            await self._retire_link(link, disconnect=True)

        try:
            async with self.registry.locked(session_id) as entry:
                self.registry.remove(entry)
        except SessionNotFoundError:
            pass

        try:
            await self.store.remove(session_id)
            await self.store.delete_credential_material(session_id)
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.discard_cleanup_failed", {
                "session_id": session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })

    # === Side effects ===

    async def _persist(self, session: Session) -> None:
        try:
            await self.store.save(session.to_record())
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.metadata_save_failed", {
                "session_id": session.id,
                "error": str(e),
                "error_type": type(e).__name__
            })

    def _publish(self, session: Session, event_type: EventType, payload: Any) -> None:
        try:
            self.publisher.publish(EventEnvelope(
                session_id=session.id,
                origin=session.origin,
                event_type=event_type,
                payload=payload,
            ))
        except Exception as e:
            self.logger.error("lifecycle_orchestrator.publish_failed", {
                "session_id": session.id,
                "event_type": event_type.value,
                "error": str(e)
            })


def _status_code(update: Any) -> Any:
    if isinstance(update, Mapping):
        return update.get("status")
    return getattr(update, "status", None)
