"""
Events REST API
===============
Read-only view of the dispatcher's recent-events buffer, plus a local
webhook receiver for development.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from ..core.logger import get_logger
from ..infrastructure.webhook.event_dispatcher import EventDispatcher
from .dependencies import get_dispatcher, verify_api_key
from .response_envelope import json_ok

router = APIRouter(tags=["events"], dependencies=[Depends(verify_api_key)])
dev_router = APIRouter(tags=["development"], dependencies=[Depends(verify_api_key)])

logger = get_logger("events_routes")


@router.get("/events")
async def list_recent_events(
    dispatcher: EventDispatcher = Depends(get_dispatcher)
) -> JSONResponse:
    events = dispatcher.recent_events.list()
    return json_ok({"events": events, "count": len(events)})


@router.delete("/events")
async def clear_recent_events(
    dispatcher: EventDispatcher = Depends(get_dispatcher)
) -> JSONResponse:
    cleared = dispatcher.recent_events.clear()
    return json_ok({"cleared": cleared})


@dev_router.post("/webhook-test")
async def webhook_test(request: Request, body: Dict[str, Any] = Body(...)) -> JSONResponse:
    """Local delivery target: logs what it receives and echoes it back"""
    event_type = request.headers.get("X-Webhook-Event")
    logger.info("events_routes.webhook_received", {
        "event_type": event_type,
        "session_id": body.get("session_id")
    })
    return json_ok({"received": True, "event_type": event_type, "event": body})
