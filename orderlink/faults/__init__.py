"""
OrderLink Faults - typed fault signals.

Faults are structured exceptions with a stable code, a domain and a
``public`` flag. The socket runtime uses the flag to decide whether a
fault's message may be shown to the client.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigMissingFault,
    ConfigInvalidFault,
    SecurityFault,
    AuthenticationFault,
    AuthorizationFault,
    FlowFault,
    InvalidStateFault,
    NotFoundFault,
    InfrastructureFault,
    ModelFault,
    QueryFault,
    DatabaseConnectionFault,
    SchemaFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "ConfigMissingFault",
    "ConfigInvalidFault",
    "SecurityFault",
    "AuthenticationFault",
    "AuthorizationFault",
    "FlowFault",
    "InvalidStateFault",
    "NotFoundFault",
    "InfrastructureFault",
    "ModelFault",
    "QueryFault",
    "DatabaseConnectionFault",
    "SchemaFault",
]
