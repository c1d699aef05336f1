"""Database backend adapters."""

from .base import DatabaseAdapter, AdapterCapabilities

__all__ = ["DatabaseAdapter", "AdapterCapabilities"]
