"""
Callback plumbing shared by transport client implementations.
"""

from typing import Any, Optional

from ...core.logger import StructuredLogger
from ...domain.interfaces.transport import (
    ConnectedCallback,
    CredentialCallback,
    DisconnectedCallback,
    ITransportClient,
    MessageCallback,
    StatusCallback,
)


class CallbackTransportClient(ITransportClient):
    """
    Stores one callback per event kind and fires it if registered.

    A callback that raises is logged; the transport keeps running.
    """

    def __init__(self, session_id: str, logger: StructuredLogger):
        self.session_id = session_id
        self.logger = logger
        self._on_credential: Optional[CredentialCallback] = None
        self._on_connected: Optional[ConnectedCallback] = None
        self._on_disconnected: Optional[DisconnectedCallback] = None
        self._on_message: Optional[MessageCallback] = None
        self._on_message_status: Optional[StatusCallback] = None

    def on_credential(self, callback: CredentialCallback) -> None:
        self._on_credential = callback

    def on_connected(self, callback: ConnectedCallback) -> None:
        self._on_connected = callback

    def on_disconnected(self, callback: DisconnectedCallback) -> None:
        self._on_disconnected = callback

    def on_message(self, callback: MessageCallback) -> None:
        self._on_message = callback

    def on_message_status(self, callback: StatusCallback) -> None:
        self._on_message_status = callback

    def _fire(self, name: str, callback, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error("transport.callback_failed", {
                "session_id": self.session_id,
                "callback": name,
                "error": str(e),
                "error_type": type(e).__name__
            })

    def _emit_credential(self, token: str) -> None:
        self._fire("credential", self._on_credential, token)

    def _emit_connected(self, account_id: str, display_name: Optional[str]) -> None:
        self._fire("connected", self._on_connected, account_id, display_name)

    def _emit_disconnected(self, reason: Any) -> None:
        self._fire("disconnected", self._on_disconnected, reason)

    def _emit_message(self, message: Any) -> None:
        self._fire("message", self._on_message, message)

    def _emit_message_status(self, update: Any) -> None:
        self._fire("message_status", self._on_message_status, update)
