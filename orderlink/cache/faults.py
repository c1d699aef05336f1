"""
OrderLink Cache - Fault types.

Cache faults never reach clients. ``CacheService`` catches them and
returns its per-operation fallback; each feature then decides whether
a cache outage allows or denies what it guards.
"""

from __future__ import annotations

from orderlink.faults.core import Fault, FaultDomain, Severity


class CacheFault(Fault):
    """Base class for cache faults. ``backend`` names the failing store."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        backend: str,
        severity: Severity = Severity.ERROR,
        retryable: bool = True,
        **metadata,
    ):
        self.backend = backend
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CACHE,
            severity=severity,
            retryable=retryable,
            public=False,
            metadata={"backend": backend, **metadata},
        )


class CacheConnectionFault(CacheFault):
    """Backend unreachable (ping or connect failed)."""

    def __init__(self, backend: str, reason: str):
        super().__init__(
            "CACHE_CONNECTION_FAILED",
            f"Cache backend '{backend}' connection failed: {reason}",
            backend=backend,
            reason=reason,
        )


class CacheBackendFault(CacheFault):
    """A single backend command failed."""

    def __init__(self, backend: str, operation: str, reason: str):
        super().__init__(
            "CACHE_BACKEND_ERROR",
            f"Cache backend '{backend}' {operation} failed: {reason}",
            backend=backend,
            operation=operation,
            reason=reason,
        )


class CacheSerializationFault(CacheFault):
    """A value could not be encoded for, or decoded from, the backend."""

    def __init__(self, key: str, operation: str, reason: str, backend: str = "serializer"):
        super().__init__(
            "CACHE_SERIALIZATION_FAILED",
            f"Cache {operation} failed for key '{key}': {reason}",
            backend=backend,
            severity=Severity.WARN,
            retryable=False,
            key=key,
            operation=operation,
            reason=reason,
        )
