"""
OrderLink Cache - JSON value serializer.

Values written to a shared Redis must be readable by other services,
so only JSON is supported.
"""

from __future__ import annotations

import json
from typing import Any

from .faults import CacheSerializationFault


class JsonCacheSerializer:
    """
    JSON serializer.

    Handles Python primitives and containers (dict, list, str, int,
    float, bool, None). Falls back to ``str()`` for other types such as
    datetimes.
    """

    def serialize(self, value: Any, key: str = "") -> bytes:
        try:
            return json.dumps(value, default=str, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            raise CacheSerializationFault(key, "serialize", str(e)) from e

    def deserialize(self, data: bytes | str, key: str = "") -> Any:
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheSerializationFault(key, "deserialize", str(e)) from e
