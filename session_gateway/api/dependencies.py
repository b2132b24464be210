"""
FastAPI Dependencies for API Routes

Components are read from ``app.state``, where the app factory stores the
container-built instances.
"""

import hmac
from typing import Optional

from fastapi import HTTPException, Request, status

from ..domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from ..infrastructure.webhook.event_dispatcher import EventDispatcher


def get_orchestrator(request: Request) -> LifecycleOrchestrator:
    return request.app.state.orchestrator


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.event_dispatcher


def _presented_key(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip()
    return request.headers.get("X-API-Key")


async def verify_api_key(request: Request) -> None:
    """
    FastAPI dependency enforcing the configured API key.

    Accepts ``Authorization: Bearer <key>`` or ``X-API-Key: <key>``. Does
    nothing when no key is configured.

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    expected = request.app.state.settings.api.api_key
    if not expected:
        return

    presented = _presented_key(request)
    if not presented:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error_code": "authentication_required", "error_message": "API key required"},
        )
    if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error_code": "auth_failed", "error_message": "Invalid API key"},
        )
