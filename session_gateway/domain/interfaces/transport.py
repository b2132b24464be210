"""
Transport Interfaces - Port for the messaging network
=====================================================
One transport client instance backs exactly one session. Clients report what
happens on the network only through the registered callbacks, on their own
timeline; callbacks may fire several times or never.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

CredentialCallback = Callable[[str], None]
ConnectedCallback = Callable[[str, Optional[str]], None]
DisconnectedCallback = Callable[[Any], None]
MessageCallback = Callable[[Any], None]
StatusCallback = Callable[[Any], None]


class ITransportClient(ABC):
    """
    Interface for a per-session network client.

    Callbacks must be registered before ``connect`` is called. Implementations
    call them from the event loop thread and never await inside them.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection. Raises on immediate failure."""
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection and release resources"""
        raise NotImplementedError

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> str:
        """
        Send an outbound message.

        Args:
            message: Validated message fields, including the recipient ``to``

        Returns:
            Network message id
        """
        raise NotImplementedError

    @abstractmethod
    def on_credential(self, callback: CredentialCallback) -> None:
        """Register callback for a newly issued scannable credential"""
        pass

    @abstractmethod
    def on_connected(self, callback: ConnectedCallback) -> None:
        """Register callback for (account_id, display_name) once authenticated"""
        pass

    @abstractmethod
    def on_disconnected(self, callback: DisconnectedCallback) -> None:
        """Register callback for connection loss with an optional reason"""
        pass

    @abstractmethod
    def on_message(self, callback: MessageCallback) -> None:
        """Register callback for inbound messages"""
        pass

    @abstractmethod
    def on_message_status(self, callback: StatusCallback) -> None:
        """Register callback for outbound message status updates"""
        pass


# Builds a fresh, unconnected client for a session id
TransportFactory = Callable[[str], ITransportClient]
