"""
OPC UA bridge exceptions with recovery hints

All exceptions include contextual information and user-friendly recovery hints.
Protocol errors keep the message reported by the server or SDK unchanged.
"""


class OpcUaException(Exception):
    """Base exception for all bridge errors"""

    def __init__(
        self,
        message: str,
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        self.message = message
        self.recovery_hint = recovery_hint
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context and recovery hint"""
        parts = [self.message]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{context_str}]")
        if self.recovery_hint:
            parts.append(f"Hint: {self.recovery_hint}")
        return " ".join(parts)


class TransportError(OpcUaException):
    """Raised when the transport connection to the server fails"""

    def __init__(
        self,
        message: str = "Failed to connect to server",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Check the server host and port are reachable. Connect is not retried automatically."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class SessionError(OpcUaException):
    """Raised when session creation or activation fails"""

    def __init__(
        self,
        message: str = "Failed to create session",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "The transport is still connected. Issue connect again to retry the session."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class BrowseError(OpcUaException):
    """Raised when a browse request fails"""

    def __init__(
        self,
        message: str = "Browse failed",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Verify the node exists on the server (e.g. 'ns=2;i=5' or 'RootFolder')."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class ReadError(OpcUaException):
    """Raised when reading a node value fails"""

    def __init__(
        self,
        message: str = "Read failed",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Verify the node is a variable and the session is still alive."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class SubscriptionError(OpcUaException):
    """Raised when the subscription cannot be created or started"""

    def __init__(
        self,
        message: str = "Subscription could not be started",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Check the server accepts subscriptions, then disconnect and connect again."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class MonitorError(OpcUaException):
    """Raised when the server rejects a monitored item"""

    def __init__(
        self,
        message: str = "Monitored item creation failed",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Verify the node is a variable that supports value monitoring."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class StaleSubscriptionError(OpcUaException):
    """Raised when a registry operation runs after the subscription terminated"""

    def __init__(
        self,
        message: str = "Subscription has terminated",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Disconnect and connect again to monitor variables."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class PreconditionError(OpcUaException):
    """Raised when an operation needs a session or subscription that does not exist"""

    def __init__(
        self,
        message: str = "Not connected",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Connect to a server before browsing, reading or monitoring."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class BusyError(OpcUaException):
    """Raised when connect is called while a connection is in progress or established"""

    def __init__(
        self,
        message: str = "A connection is already in progress",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Wait for the current connect to finish, or disconnect first."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class HandshakeCancelledError(OpcUaException):
    """Raised to a pending connect when disconnect interrupts the handshake"""

    def __init__(
        self,
        message: str = "Disconnected during handshake",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Connect was interrupted by a disconnect request. Issue connect again."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class InvalidSlotError(OpcUaException):
    """Raised when a standard variable slot is not in the table"""

    def __init__(
        self,
        message: str = "Invalid standard variable slot",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Use one of the slots listed by the standard variable table."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class InvalidParameterError(OpcUaException):
    """Raised when invalid parameters are provided"""

    def __init__(
        self,
        message: str = "Invalid parameter",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Check parameter value and format."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class InvalidValueError(OpcUaException):
    """Raised when a notification value cannot be persisted"""

    def __init__(
        self,
        message: str = "Value cannot be persisted",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Only finite numeric values are persisted. The value was still broadcast."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )


class SinkError(OpcUaException):
    """Raised when a persistence or broadcast sink fails"""

    def __init__(
        self,
        message: str = "Sink delivery failed",
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        default_hint = "Check the sink is available. Fanout continues with the next notification."
        super().__init__(
            message,
            recovery_hint or default_hint,
            context,
        )
