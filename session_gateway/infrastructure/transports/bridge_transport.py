"""
Bridge Transport
================
Talks to an external protocol bridge over one WebSocket per session.

Wire format: JSON text frames with a ``type`` field.

Outbound:
    {"type": "hello", "session_id": ..., "credentials": {...} | null}
    {"type": "send", "request_id": ..., "message": {...}}

Inbound:
    credential          {"token"}
    connected           {"account_id", "display_name"}
    disconnected        {"reason"}
    message             {"message"}
    message_status      {"update": {"message_id", "status"}}
    credentials_update  {"credentials"}  -> persisted as credential material
    send_result         {"request_id", "message_id"} or {"request_id", "error"}
"""

import asyncio
import json
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ...core.logger import StructuredLogger, get_logger
from ...domain.interfaces.storage import IMetadataStore
from .base import CallbackTransportClient


class BridgeTransportClient(CallbackTransportClient):

    def __init__(
        self,
        session_id: str,
        store: IMetadataStore,
        settings: Any,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(session_id, logger or get_logger("bridge_transport"))
        self.store = store
        self.settings = settings
        self.url = f"{settings.bridge_url.rstrip('/')}/sessions/{quote(session_id, safe='')}"

        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending_sends: Dict[str, asyncio.Future] = {}
        self._closing = False
        self._disconnect_emitted = False

    async def connect(self) -> None:
        self._websocket = await websockets.connect(
            self.url,
            ping_interval=self.settings.bridge_ping_interval_seconds,
            ping_timeout=self.settings.bridge_ping_interval_seconds * 1.5,
            close_timeout=5
        )
        material = await self.store.load_credential_material(self.session_id)
        await self._websocket.send(json.dumps({
            "type": "hello",
            "session_id": self.session_id,
            "credentials": material,
        }))
        self._reader_task = asyncio.create_task(self._read_loop(self._websocket))
        self.logger.info("bridge_transport.connected", {
            "session_id": self.session_id,
            "url": self.url,
            "resume": material is not None
        })

    async def _read_loop(self, websocket) -> None:
        reason: Any = "bridge connection ended"
        try:
            async for raw in websocket:
                try:
                    await self._handle_frame(json.loads(raw))
                except (KeyError, ValueError, TypeError) as e:
                    self.logger.warning("bridge_transport.bad_frame", {
                        "session_id": self.session_id,
                        "error": str(e),
                        "frame_sample": str(raw)[:200]
                    })
        except ConnectionClosed as e:
            reason = f"connection closed ({getattr(e, 'code', None)})"
            self.logger.warning("bridge_transport.connection_closed", {
                "session_id": self.session_id,
                "code": getattr(e, 'code', None),
                "reason": getattr(e, 'reason', str(e))
            })
        except WebSocketException as e:
            reason = f"{type(e).__name__}: {e}"
            self.logger.error("bridge_transport.websocket_error", {
                "session_id": self.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
        finally:
            self._fail_pending(ConnectionError(f"Bridge connection for {self.session_id} closed"))
            if not self._closing:
                self._emit_disconnect_once(reason)

    async def _handle_frame(self, frame: Dict[str, Any]) -> None:
        frame_type = frame["type"]

        if frame_type == "credential":
            self._emit_credential(frame["token"])
        elif frame_type == "connected":
            self._emit_connected(frame["account_id"], frame.get("display_name"))
        elif frame_type == "disconnected":
            self._emit_disconnect_once(frame.get("reason"))
        elif frame_type == "message":
            self._emit_message(frame["message"])
        elif frame_type == "message_status":
            self._emit_message_status(frame["update"])
        elif frame_type == "credentials_update":
            try:
                await self.store.save_credential_material(self.session_id, frame["credentials"])
            except OSError as e:
                self.logger.error("bridge_transport.credentials_save_failed", {
                    "session_id": self.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })
        elif frame_type == "send_result":
            future = self._pending_sends.pop(frame["request_id"], None)
            if future is None or future.done():
                return
            if frame.get("error"):
                future.set_exception(RuntimeError(frame["error"]))
            else:
                future.set_result(frame["message_id"])
        else:
            self.logger.debug("bridge_transport.unknown_frame", {
                "session_id": self.session_id,
                "type": frame_type
            })

    def _emit_disconnect_once(self, reason: Any) -> None:
        if not self._disconnect_emitted:
            self._disconnect_emitted = True
            self._emit_disconnected(reason)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending_sends.values():
            if not future.done():
                future.set_exception(error)
        self._pending_sends.clear()

    async def send(self, message: Dict[str, Any]) -> str:
        if self._websocket is None or self._closing:
            raise ConnectionError(f"Bridge session {self.session_id} is not open")

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending_sends[request_id] = future
        try:
            await self._websocket.send(json.dumps({
                "type": "send",
                "request_id": request_id,
                "message": message,
            }))
            return await asyncio.wait_for(future, timeout=self.settings.bridge_send_timeout_seconds)
        finally:
            self._pending_sends.pop(request_id, None)

    async def disconnect(self) -> None:
        self._closing = True
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            try:
                await websocket.close()
            except WebSocketException as e:
                self.logger.warning("bridge_transport.close_failed", {
                    "session_id": self.session_id,
                    "error": str(e)
                })
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        self._fail_pending(ConnectionError(f"Bridge session {self.session_id} closed"))
        self._emit_disconnect_once("client disconnect")
