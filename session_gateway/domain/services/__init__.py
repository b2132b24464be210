"""
Domain Services
===============
Session registry, single-flight helper and the lifecycle orchestrator.
"""

from .session_registry import SessionRegistry, SessionEntry
from .single_flight import SingleFlight
from .lifecycle_orchestrator import LifecycleOrchestrator, TransportLink

__all__ = [
    'SessionRegistry',
    'SessionEntry',
    'SingleFlight',
    'LifecycleOrchestrator',
    'TransportLink',
]
