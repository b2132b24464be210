"""
Response Envelope Utilities
===========================
Every REST response body is either

    {"type": "response", "data": ..., "version": ..., "timestamp": ...}
    {"type": "error", "error_code": ..., "error_message": ..., "version": ..., "timestamp": ...}

``ensure_envelope`` only adds missing metadata and never rewrites payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


DEFAULT_PROTOCOL_VERSION = "1.0"


@dataclass(frozen=True)
class EnvelopeMeta:
    version: str = DEFAULT_PROTOCOL_VERSION
    add_timestamp: bool = True


def ensure_envelope(message: Dict[str, Any],
                    request_id: Optional[str] = None,
                    meta: EnvelopeMeta = EnvelopeMeta()) -> Dict[str, Any]:
    """
    Add ``version``, ISO ``timestamp`` and the correlation ``id`` when missing.

    Works on a shallow copy; non-dict messages pass through unchanged.
    """
    if not isinstance(message, dict):
        return message

    enriched = dict(message)

    if not enriched.get("version"):
        enriched["version"] = meta.version

    if meta.add_timestamp and not enriched.get("timestamp"):
        enriched["timestamp"] = datetime.now(timezone.utc).isoformat()

    if request_id and not enriched.get("id"):
        enriched["id"] = request_id

    return enriched


def json_ok(payload: Any, status_code: int = 200, request_id: Optional[str] = None) -> JSONResponse:
    body = ensure_envelope({"type": "response", "data": payload}, request_id=request_id)
    return JSONResponse(content=jsonable_encoder(body), status_code=status_code)


def json_error(code: str, message: str, status_code: int = 400, request_id: Optional[str] = None) -> JSONResponse:
    body = ensure_envelope({
        "type": "error",
        "error_code": code,
        "error_message": message,
    }, request_id=request_id)
    return JSONResponse(content=body, status_code=status_code)
