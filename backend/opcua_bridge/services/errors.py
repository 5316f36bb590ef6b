"""
Standardized error handling for the bridge service

Provides consistent error payloads and an error handling decorator that turns
bridge exceptions into them.
"""

import logging
from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from pydantic import BaseModel

from opcua_bridge.opcua.exceptions import (
    BrowseError,
    BusyError,
    HandshakeCancelledError,
    InvalidParameterError,
    InvalidSlotError,
    InvalidValueError,
    MonitorError,
    OpcUaException,
    PreconditionError,
    ReadError,
    SessionError,
    SinkError,
    StaleSubscriptionError,
    SubscriptionError,
    TransportError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for bridge responses"""

    TRANSPORT_ERROR = "transport_error"
    SESSION_ERROR = "session_error"
    BROWSE_ERROR = "browse_error"
    READ_ERROR = "read_error"
    SUBSCRIPTION_ERROR = "subscription_error"
    MONITOR_ERROR = "monitor_error"
    STALE_SUBSCRIPTION = "stale_subscription"
    NOT_CONNECTED = "not_connected"
    BUSY = "busy"
    HANDSHAKE_CANCELLED = "handshake_cancelled"
    INVALID_SLOT = "invalid_slot"
    VALIDATION_ERROR = "validation_error"
    INVALID_VALUE = "invalid_value"
    SINK_ERROR = "sink_error"
    TIMEOUT_ERROR = "timeout_error"
    INTERNAL_ERROR = "internal_error"


ERROR_CODES: dict[type[OpcUaException], ErrorCode] = {
    TransportError: ErrorCode.TRANSPORT_ERROR,
    SessionError: ErrorCode.SESSION_ERROR,
    BrowseError: ErrorCode.BROWSE_ERROR,
    ReadError: ErrorCode.READ_ERROR,
    SubscriptionError: ErrorCode.SUBSCRIPTION_ERROR,
    MonitorError: ErrorCode.MONITOR_ERROR,
    StaleSubscriptionError: ErrorCode.STALE_SUBSCRIPTION,
    PreconditionError: ErrorCode.NOT_CONNECTED,
    BusyError: ErrorCode.BUSY,
    HandshakeCancelledError: ErrorCode.HANDSHAKE_CANCELLED,
    InvalidSlotError: ErrorCode.INVALID_SLOT,
    InvalidParameterError: ErrorCode.VALIDATION_ERROR,
    InvalidValueError: ErrorCode.INVALID_VALUE,
    SinkError: ErrorCode.SINK_ERROR,
}


class ErrorResponse(BaseModel):
    """Standard error response format"""

    error: ErrorCode
    message: str
    recovery_hint: str | None = None
    details: dict[str, Any] | None = None


class BridgeServiceError(Exception):
    """Carries a rendered ErrorResponse out of a bridge service call"""

    def __init__(self, response: ErrorResponse):
        self.response = response
        super().__init__(response.message)

    @property
    def code(self) -> ErrorCode:
        return self.response.error


def error_response(exc: Exception) -> ErrorResponse:
    """
    Render an exception as an ErrorResponse

    Bridge exceptions keep their message, hint and context; anything else is
    an internal error.
    """
    if isinstance(exc, OpcUaException):
        code = next(
            (ERROR_CODES[cls] for cls in type(exc).__mro__ if cls in ERROR_CODES),
            ErrorCode.INTERNAL_ERROR,
        )
        return ErrorResponse(
            error=code,
            message=exc.message,
            recovery_hint=exc.recovery_hint or None,
            details={k: str(v) for k, v in exc.context.items()} or None,
        )
    if isinstance(exc, TimeoutError):
        return ErrorResponse(
            error=ErrorCode.TIMEOUT_ERROR,
            message=f"Operation timed out: {exc}",
            recovery_hint="Check the server is responsive, or increase OPCUA_BRIDGE_REQUEST_TIMEOUT.",
        )
    return ErrorResponse(
        error=ErrorCode.INTERNAL_ERROR,
        message=str(exc) or type(exc).__name__,
        recovery_hint="Check the application logs for more details.",
    )


def bridge_exception_handler(operation: str):
    """
    Decorator for consistent error handling in bridge service calls

    Logs the failure and re-raises it as BridgeServiceError carrying the
    rendered ErrorResponse.

    Args:
        operation: Description of the operation for logging

    Example:
        @bridge_exception_handler("connect")
        async def connect(self, url, port):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except BridgeServiceError:
                raise
            except OpcUaException as e:
                logger.warning(f"{operation} failed: {e}")
                raise BridgeServiceError(error_response(e)) from e
            except Exception as e:
                logger.exception(f"{operation} failed: {e}")
                raise BridgeServiceError(error_response(e)) from e

        return wrapper

    return decorator
