"""
Domain Interfaces - Ports for External Dependencies
===================================================
Abstract interfaces that define how the lifecycle orchestrator talks to
transports, persistence and event delivery.
"""

from .transport import ITransportClient, TransportFactory
from .storage import IMetadataStore
from .events import IEventPublisher

__all__ = [
    # Transport
    'ITransportClient', 'TransportFactory',
    # Persistence
    'IMetadataStore',
    # Delivery
    'IEventPublisher',
]
