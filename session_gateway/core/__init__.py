"""
Core module for the session gateway
"""

from .exceptions import (
    SessionGatewayError,
    SessionNotFoundError,
    SessionAlreadyExistsError,
    SessionTimeoutError,
    SessionNotConnectedError,
    TransportFailureError,
    MessageValidationError,
)
from .logger import StructuredLogger, get_logger

__all__ = [
    'SessionGatewayError',
    'SessionNotFoundError',
    'SessionAlreadyExistsError',
    'SessionTimeoutError',
    'SessionNotConnectedError',
    'TransportFailureError',
    'MessageValidationError',
    'StructuredLogger',
    'get_logger',
]
