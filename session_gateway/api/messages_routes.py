"""
Messages REST API
=================
Outbound sends through a connected session.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from .dependencies import get_orchestrator, verify_api_key
from .response_envelope import json_ok

router = APIRouter(prefix="/sessions", tags=["messages"], dependencies=[Depends(verify_api_key)])


@router.post("/{session_id}/messages")
async def send_message(
    session_id: str,
    body: Dict[str, Any] = Body(...),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> JSONResponse:
    """
    Send a message.

    Body examples:
        {"to": "15551234567", "type": "text", "text": "hello"}
        {"to": "15551234567", "type": "image", "media_url": "https://...", "caption": "hi"}
        {"to": "15551234567", "type": "location", "latitude": 52.2, "longitude": 21.0}

    Returns:
        {"message_id", "timestamp", "status"}
    """
    result = await orchestrator.send_message(session_id, body)
    return json_ok(result.model_dump())
