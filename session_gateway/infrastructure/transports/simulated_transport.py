"""
Simulated Transport
===================
Stand-in for the real network client, used in development and tests.

A fresh session gets a credential after ``simulated_credential_delay_seconds``
and, unless the connect delay is None, "scans" it and connects as the
configured test account. The account is written as credential material, so a
later client for the same session resumes straight to connected.
"""

import asyncio
import uuid
from typing import Any, Dict, Optional

from ...core.logger import StructuredLogger, get_logger
from ...domain.interfaces.storage import IMetadataStore
from .base import CallbackTransportClient


class SimulatedTransportClient(CallbackTransportClient):

    def __init__(
        self,
        session_id: str,
        store: IMetadataStore,
        settings: Any,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(session_id, logger or get_logger("simulated_transport"))
        self.store = store
        self.settings = settings
        self.connected = False
        self._active = False
        self._task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        if self._active:
            return
        self._active = True
        material = await self.store.load_credential_material(self.session_id)
        self._task = asyncio.create_task(self._run(material))
        self.logger.debug("simulated_transport.connect", {
            "session_id": self.session_id,
            "resume": material is not None
        })

    async def _run(self, material: Optional[Dict[str, Any]]) -> None:
        if material:
            await asyncio.sleep(0)
            self._mark_connected(material.get("account_id"), material.get("display_name"))
            return

        await asyncio.sleep(self.settings.simulated_credential_delay_seconds)
        self._emit_credential(f"SIM-QR:{self.session_id}:{uuid.uuid4().hex}")

        connect_delay = self.settings.simulated_connect_delay_seconds
        if connect_delay is None:
            return

        await asyncio.sleep(connect_delay)
        account_id = self.settings.simulated_account_id
        display_name = self.settings.simulated_display_name
        await self.store.save_credential_material(self.session_id, {
            "account_id": account_id,
            "display_name": display_name,
            "simulated": True,
        })
        self._mark_connected(account_id, display_name)

    def _mark_connected(self, account_id: str, display_name: Optional[str]) -> None:
        self.connected = True
        self._emit_connected(account_id, display_name)

    async def disconnect(self) -> None:
        if not self._active:
            return
        self._active = False
        self.connected = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._emit_disconnected("client disconnect")

    async def send(self, message: Dict[str, Any]) -> str:
        if not self.connected:
            raise ConnectionError(f"Simulated session {self.session_id} is not connected")
        message_id = f"sim_{uuid.uuid4().hex[:16]}"
        self.logger.info("simulated_transport.message_sent", {
            "session_id": self.session_id,
            "to": message.get("to"),
            "message_id": message_id
        })
        return message_id

    def simulate_incoming(self, message: Any) -> None:
        """Deliver an inbound message as if it came from the network"""
        self._emit_message(message)

    def simulate_status(self, message_id: str, status: int) -> None:
        self._emit_message_status({"message_id": message_id, "status": status})
