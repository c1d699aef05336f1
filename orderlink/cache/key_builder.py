"""
OrderLink Cache - Key builder.

Keys are colon-separated segments: ``{prefix}{namespace}:{key}``.
An empty namespace yields ``{prefix}{key}``.
"""

from __future__ import annotations


class DefaultKeyBuilder:
    """Builds fully qualified cache keys."""

    def build(self, namespace: str, key: str, prefix: str = "") -> str:
        if namespace:
            return f"{prefix}{namespace}:{key}"
        return f"{prefix}{key}"
