"""
Socket Faults - structured errors raised by the socket runtime.
"""

from orderlink.faults import Fault, FaultDomain, Severity


class SocketFault(Fault):
    """Base fault for socket transport operations."""

    def __init__(
        self,
        code: str,
        message: str,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        **kwargs
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.NETWORK,
            severity=severity,
            retryable=retryable,
            **kwargs
        )


# Handshake faults

WS_ORIGIN_NOT_ALLOWED = lambda origin="": SocketFault(
    code="WS_ORIGIN_NOT_ALLOWED",
    message=f"Origin not allowed: {origin}",
    severity=Severity.WARN,
    retryable=False, metadata={'ws_close_code': 4403},
)

# Message faults

WS_MESSAGE_INVALID = lambda reason="": SocketFault(
    code="WS_MESSAGE_INVALID",
    message=f"Invalid message format: {reason}",
    severity=Severity.WARN,
    retryable=True, public=True,
)

WS_PAYLOAD_TOO_LARGE = lambda size=0, limit=0: SocketFault(
    code="WS_PAYLOAD_TOO_LARGE",
    message=f"Payload too large: {size} bytes (limit: {limit})",
    severity=Severity.WARN,
    retryable=True, public=True, metadata={'ws_close_code': 1009},
)

WS_UNSUPPORTED_EVENT = lambda event="": SocketFault(
    code="WS_UNSUPPORTED_EVENT",
    message=f"Unsupported event type: {event}",
    severity=Severity.WARN,
    retryable=True, public=True,
)

# Rate limiting

WS_RATE_LIMIT_EXCEEDED = lambda limit=0: SocketFault(
    code="WS_RATE_LIMIT_EXCEEDED",
    message="Too many requests",
    severity=Severity.WARN,
    retryable=True, public=True, metadata={'limit': limit},
)

# Adapter faults

WS_ADAPTER_UNAVAILABLE = lambda adapter="", reason="": SocketFault(
    code="WS_ADAPTER_UNAVAILABLE",
    message=f"Adapter unavailable: {adapter} ({reason})",
    severity=Severity.FATAL,
    retryable=False,
)

WS_PUBLISH_FAILED = lambda reason="": SocketFault(
    code="WS_PUBLISH_FAILED",
    message=f"Failed to publish message: {reason}",
    severity=Severity.ERROR,
    retryable=True,
)
