"""
Dependency Injection Container - Composition Root
=================================================
Builds the gateway's long-lived components once, from AppSettings, and hands
the same instances to the orchestrator and the HTTP layer.

Usage:
    container = Container(settings)
    orchestrator = container.create_orchestrator()
    app.state.orchestrator = orchestrator
"""

from typing import Any, Callable, Dict, Optional, TypeVar

from ..core.logger import StructuredLogger, get_logger
from ..domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from ..domain.services.session_registry import SessionRegistry
from .config.settings import AppSettings
from .persistence.metadata_store import FileMetadataStore
from .transports.factory import TransportClientFactory
from .webhook.event_dispatcher import EventDispatcher

T = TypeVar('T')


class Container:
    """
    Singleton-per-container factory for every gateway component.

    Tests can construct their own container (or pre-seed ``_singletons``) to
    swap components.
    """

    def __init__(self, settings: AppSettings, logger: Optional[StructuredLogger] = None):
        self.settings = settings
        self.logger = logger or get_logger("container")
        self._singletons: Dict[str, Any] = {}

    def _get_or_create_singleton(self, name: str, factory: Callable[[], T]) -> T:
        if name not in self._singletons:
            self._singletons[name] = factory()
            self.logger.debug("container.created", {"component": name})
        return self._singletons[name]

    def has_singleton(self, name: str) -> bool:
        return name in self._singletons

    def register_singleton(self, name: str, instance: Any) -> None:
        """Install a pre-built component (tests, alternative stores)"""
        self._singletons[name] = instance

    def create_session_registry(self) -> SessionRegistry:
        return self._get_or_create_singleton("session_registry", SessionRegistry)

    def create_metadata_store(self) -> FileMetadataStore:
        persistence = self.settings.persistence
        return self._get_or_create_singleton(
            "metadata_store",
            lambda: FileMetadataStore(persistence.data_path, persistence.metadata_filename)
        )

    def create_event_dispatcher(self) -> EventDispatcher:
        return self._get_or_create_singleton(
            "event_dispatcher",
            lambda: EventDispatcher(self.settings.webhook)
        )

    def create_transport_factory(self) -> TransportClientFactory:
        return self._get_or_create_singleton(
            "transport_factory",
            lambda: TransportClientFactory(self.settings.transport, self.create_metadata_store())
        )

    def create_orchestrator(self) -> LifecycleOrchestrator:
        return self._get_or_create_singleton(
            "lifecycle_orchestrator",
            lambda: LifecycleOrchestrator(
                registry=self.create_session_registry(),
                store=self.create_metadata_store(),
                publisher=self.create_event_dispatcher(),
                transport_factory=self.create_transport_factory(),
                settings=self.settings.sessions,
            )
        )

    async def start(self) -> None:
        """Start delivery first so recovered sessions' events are not lost"""
        await self.create_event_dispatcher().start()
        await self.create_orchestrator().start()

    async def shutdown(self) -> None:
        if self.has_singleton("lifecycle_orchestrator"):
            await self._singletons["lifecycle_orchestrator"].stop()
        if self.has_singleton("event_dispatcher"):
            await self._singletons["event_dispatcher"].stop()
        self.logger.info("container.shutdown_complete", {"components": list(self._singletons)})
