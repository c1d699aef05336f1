"""
OrderLink DB - async persistence for chat messages, notifications and
agent locations.
"""

from .engine import Database
from .schema import create_schema

__all__ = ["Database", "create_schema"]
