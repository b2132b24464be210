"""
Core Exceptions - Session Gateway
=================================
Centralized exception definitions for session lifecycle and messaging.

Every exception carries a stable ``error_code`` consumed by the API error mapper.
"""

from typing import Optional


class SessionGatewayError(Exception):
    """Base exception for all expected gateway failures."""
    error_code = "gateway_error"

    def __init__(self, message: str, session_id: Optional[str] = None):
        self.session_id = session_id
        self.message = message
        super().__init__(message)


class SessionNotFoundError(SessionGatewayError):
    """
    Raised when no live session has the given id.

    HTTP Status: 404 Not Found
    """
    error_code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", session_id)


class SessionAlreadyExistsError(SessionGatewayError):
    """
    Raised when creating a session whose id is already live.

    HTTP Status: 409 Conflict
    """
    error_code = "session_already_exists"

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already exists", session_id)


class SessionTimeoutError(SessionGatewayError):
    """
    Raised when creation, reconnect or credential refresh exceeds its bound.

    HTTP Status: 504 Gateway Timeout
    """
    error_code = "session_timeout"

    def __init__(self, session_id: str, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"Timeout waiting for session {session_id} during {operation} after {timeout}s",
            session_id
        )


class SessionNotConnectedError(SessionGatewayError):
    """
    Raised when sending on a session that is not connected.

    HTTP Status: 400 Bad Request
    """
    error_code = "session_not_connected"

    def __init__(self, session_id: str, state: Optional[str] = None):
        self.state = state
        detail = f" (state: {state})" if state else ""
        super().__init__(f"Session {session_id} is not connected{detail}", session_id)


class TransportFailureError(SessionGatewayError):
    """
    Raised when the transport fails to connect or send.

    Wraps the underlying error with the session id.

    HTTP Status: 502 Bad Gateway
    """
    error_code = "transport_failure"

    def __init__(self, session_id: str, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Transport {operation} failed for session {session_id}: {type(cause).__name__}: {cause}",
            session_id
        )


class MessageValidationError(SessionGatewayError):
    """
    Raised when an outbound message payload is malformed.

    HTTP Status: 400 Bad Request
    """
    error_code = "validation_error"

    def __init__(self, message: str):
        super().__init__(message)
