"""
Error Mapper
============
Maps gateway error codes and exceptions to a stable error taxonomy with
HTTP statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..core.exceptions import SessionGatewayError


@dataclass(frozen=True)
class ErrorInfo:
    error_code: str
    error_message: str
    http_status: int = 400


DEFAULT_ERRORS: Dict[str, ErrorInfo] = {
    # Request validation
    "validation_error": ErrorInfo("validation_error", "Validation failed", 400),

    # Auth
    "authentication_required": ErrorInfo("authentication_required", "Authentication required", 401),
    "auth_failed": ErrorInfo("auth_failed", "Invalid API key", 401),

    # Session lifecycle
    "session_not_found": ErrorInfo("session_not_found", "Session not found", 404),
    "session_already_exists": ErrorInfo("session_already_exists", "Session already exists", 409),
    "session_not_connected": ErrorInfo("session_not_connected", "Session is not connected", 400),
    "session_timeout": ErrorInfo("session_timeout", "Timed out waiting for session", 504),
    "transport_failure": ErrorInfo("transport_failure", "Transport failure", 502),

    # Generic
    "not_found": ErrorInfo("not_found", "Not found", 404),
    "internal_error": ErrorInfo("internal_error", "Internal server error", 500),
}


class ErrorMapper:
    """Maps error codes / exceptions to ErrorInfo"""

    def __init__(self, overrides: Optional[Dict[str, ErrorInfo]] = None):
        self._map = dict(DEFAULT_ERRORS)
        if overrides:
            self._map.update(overrides)

    def map(self, error_code: str, message: Optional[str] = None, exc: Optional[BaseException] = None) -> ErrorInfo:
        base = self._map.get(error_code)
        if not base:
            base = ErrorInfo(error_code=error_code or "internal_error",
                             error_message="Internal server error",
                             http_status=500)
        if message:
            return ErrorInfo(error_code=base.error_code, error_message=message, http_status=base.http_status)
        if exc and str(exc).strip():
            return ErrorInfo(error_code=base.error_code, error_message=str(exc), http_status=base.http_status)
        return base

    def map_exception(self, exc: SessionGatewayError) -> ErrorInfo:
        return self.map(exc.error_code, message=exc.message)
