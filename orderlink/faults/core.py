"""
OrderLink Faults - Core types.

A fault is an exception with a stable code, a domain and a ``public``
flag. Only public faults reach socket clients verbatim; the rest are
reported with the handler's generic message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
import logging


class Severity(str, Enum):
    """How loudly a fault is logged."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def log_level(self) -> int:
        return _LOG_LEVELS[self]


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


class FaultDomain(str, Enum):
    """Area of the gateway a fault belongs to."""
    CONFIG = "config"
    FLOW = "flow"
    IO = "io"
    SECURITY = "security"
    NETWORK = "network"
    MODEL = "model"
    CACHE = "cache"


# (severity, retryable) when a fault does not say otherwise
DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: (Severity.FATAL, False),
    FaultDomain.FLOW: (Severity.INFO, False),
    FaultDomain.IO: (Severity.WARN, True),
    FaultDomain.SECURITY: (Severity.WARN, False),
    FaultDomain.NETWORK: (Severity.WARN, True),
    FaultDomain.MODEL: (Severity.ERROR, True),
    FaultDomain.CACHE: (Severity.WARN, True),
}


class Fault(Exception):
    """
    Base fault.

    Subclasses may set ``code``, ``message`` and ``domain`` as class
    attributes instead of passing them.

    Example:
        raise Fault(
            code="ORDER_NOT_FOUND",
            message="Order not found",
            domain=FaultDomain.FLOW,
            public=True,
        )
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        default_severity, default_retryable = DOMAIN_DEFAULTS.get(self.domain, (Severity.ERROR, False))
        self.severity = severity or default_severity
        self.retryable = default_retryable if retryable is None else retryable
        self.public = public
        self.metadata = metadata or {}

    def client_message(self, fallback: str) -> str:
        """What a socket client may be told about this fault."""
        return self.message if self.public else fallback

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Structured form for log records."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }
