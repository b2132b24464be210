"""
Transport Client Factory
========================
Builds the transport client configured by ``transport.mode`` for a session id.
"""

from typing import Any, Optional

from ...core.logger import StructuredLogger, get_logger
from ...domain.interfaces.storage import IMetadataStore
from ...domain.interfaces.transport import ITransportClient
from ..config.settings import TransportMode
from .bridge_transport import BridgeTransportClient
from .simulated_transport import SimulatedTransportClient


class TransportClientFactory:
    """Callable TransportFactory; counts the clients it has built."""

    def __init__(self, settings: Any, store: IMetadataStore, logger: Optional[StructuredLogger] = None):
        self.settings = settings
        self.store = store
        self.logger = logger or get_logger("transport_factory")
        self.created_count = 0

    def __call__(self, session_id: str) -> ITransportClient:
        self.created_count += 1
        if self.settings.mode == TransportMode.BRIDGE:
            client = BridgeTransportClient(session_id, self.store, self.settings)
        else:
            client = SimulatedTransportClient(session_id, self.store, self.settings)

        self.logger.debug("transport_factory.client_created", {
            "session_id": session_id,
            "mode": getattr(self.settings.mode, 'value', self.settings.mode)
        })
        return client
