"""
Session REST API
================
Create, inspect, reconnect and delete sessions.

GET /sessions/{id} is where credential refresh happens: reading a session
whose credential has expired blocks until a new one is issued.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from .dependencies import get_orchestrator, verify_api_key
from .response_envelope import json_ok

router = APIRouter(prefix="/sessions", tags=["sessions"], dependencies=[Depends(verify_api_key)])

SESSION_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$"


class CreateSessionRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, pattern=SESSION_ID_PATTERN)


@router.post("")
async def create_session(
    payload: Optional[CreateSessionRequest] = None,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> JSONResponse:
    """
    Create a session and wait for its first credential (or connection).

    Body (optional): {"session_id": "my-session"}; an id is generated otherwise.
    """
    session_id = payload.session_id if payload else None
    session = await orchestrator.create_session(session_id)
    return json_ok(session.to_dict(), status_code=201)


@router.get("")
async def list_sessions(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> JSONResponse:
    sessions = [session.to_dict() for session in orchestrator.list_sessions()]
    return json_ok({"sessions": sessions, "total_count": len(sessions)})


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> JSONResponse:
    session = await orchestrator.get_session(session_id)
    return json_ok(session.to_dict())


@router.post("/{session_id}/reconnect")
async def reconnect_session(
    session_id: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> JSONResponse:
    session = await orchestrator.reconnect_session(session_id)
    return json_ok(session.to_dict())


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> Response:
    await orchestrator.delete_session(session_id)
    return Response(status_code=204)
