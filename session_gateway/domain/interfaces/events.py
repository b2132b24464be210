"""
Event Delivery Interface
========================
"""

from abc import ABC, abstractmethod

from ..models.events import EventEnvelope


class IEventPublisher(ABC):
    """
    Fire-and-forget sink for event envelopes.

    ``publish`` must return immediately and never raise, so that session state
    transitions are never held up by delivery.
    """

    @abstractmethod
    def publish(self, envelope: EventEnvelope) -> None:
        pass
