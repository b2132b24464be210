from .base import CallbackTransportClient
from .simulated_transport import SimulatedTransportClient
from .bridge_transport import BridgeTransportClient
from .factory import TransportClientFactory

__all__ = [
    'CallbackTransportClient',
    'SimulatedTransportClient',
    'BridgeTransportClient',
    'TransportClientFactory',
]
