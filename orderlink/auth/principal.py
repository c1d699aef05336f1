"""
Principal - the identity resolved from a handshake credential.

A principal is built once per connection and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"


SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class AdminScope:
    """Administrative reach: super admin, or an admin tied to one supermarket."""
    admin_type: str
    supermarket_id: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.admin_type == SUPER_ADMIN


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role
    display_name: str
    admin_scope: Optional[AdminScope] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT

    @property
    def sender_type(self) -> str:
        """Value stored as ``sender_type`` on chat messages."""
        if self.role == Role.CUSTOMER:
            return "user"
        return self.role.value

    def to_wire(self) -> Dict[str, Any]:
        """``{id, type, name}`` as sent in presence and activation events."""
        return {"id": self.id, "type": self.role.value, "name": self.display_name}
