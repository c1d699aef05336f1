"""
OrderLink Faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- SECURITY faults (handshake authentication, order authorization)
- FLOW faults (invalid state, missing entities)
- IO faults (infrastructure unavailable)
- MODEL faults (database)
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigMissingFault(ConfigFault):
    """Required configuration is missing."""

    def __init__(self, key: str):
        super().__init__(
            code="CONFIG_MISSING",
            message=f"Required configuration key '{key}' is missing",
            metadata={"key": key},
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason},
        )


# ============================================================================
# SECURITY Faults
# ============================================================================

class SecurityFault(Fault):
    """Base class for security faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.WARN,
        public: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.SECURITY,
            severity=severity,
            retryable=False,
            public=public,
            metadata=metadata,
        )


class AuthenticationFault(SecurityFault):
    """Handshake credential rejected (missing, invalid, revoked, blocked)."""

    ws_close_code = 4401

    def __init__(self, reason: str = "Authentication error"):
        super().__init__(
            code="AUTHENTICATION_FAILED",
            message=reason,
            metadata={"reason": reason},
        )


class AuthorizationFault(SecurityFault):
    """Principal is not allowed to act on the resource."""

    def __init__(
        self,
        reason: str = "You are not authorized to perform this action",
        *,
        resource: Optional[str] = None,
        action: Optional[str] = None,
    ):
        super().__init__(
            code="AUTHORIZATION_FAILED",
            message=reason,
            metadata={"resource": resource, "action": action},
        )


# ============================================================================
# FLOW Faults
# ============================================================================

class FlowFault(Fault):
    """Base class for request-level faults reported back to the caller."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.INFO,
        public: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.FLOW,
            severity=severity,
            retryable=False,
            public=public,
            metadata=metadata,
        )


class InvalidStateFault(FlowFault):
    """Operation not valid in the current state (inactive chat, bad payload)."""

    def __init__(self, reason: str):
        super().__init__(
            code="INVALID_STATE",
            message=reason,
            metadata={"reason": reason},
        )


class NotFoundFault(FlowFault):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, identifier: Any = None):
        super().__init__(
            code="NOT_FOUND",
            message=f"{entity} not found",
            metadata={"entity": entity, "id": identifier},
        )


# ============================================================================
# IO Faults
# ============================================================================

class InfrastructureFault(Fault):
    """A backing service (cache, database, broker) failed."""

    def __init__(self, service: str, operation: str, reason: str):
        super().__init__(
            code="INFRASTRUCTURE_FAILURE",
            message=f"{service} {operation} failed: {reason}",
            domain=FaultDomain.IO,
            severity=Severity.ERROR,
            retryable=True,
            public=False,
            metadata={
                "service": service,
                "operation": operation,
                "reason": reason,
            },
        )


# ============================================================================
# MODEL Faults
# ============================================================================

class ModelFault(Fault):
    """Base class for database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            public=public,
            metadata=metadata,
        )


class QueryFault(ModelFault):
    """Query execution failed."""

    def __init__(self, table: str, operation: str, reason: str):
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{table}' ({operation}) failed: {reason}",
            retryable=True,
            metadata={"table": table, "operation": operation, "reason": reason},
        )


class DatabaseConnectionFault(ModelFault):
    """Database connection failed."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"url": url, "reason": reason},
        )


class SchemaFault(ModelFault):
    """Schema creation failed."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            code="SCHEMA_FAULT",
            message=f"Schema error for table '{table}': {reason}",
            severity=Severity.FATAL,
            metadata={"table": table, "reason": reason},
        )
