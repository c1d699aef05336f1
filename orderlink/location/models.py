"""
Agent location samples.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class LocationSample:
    agent_id: str
    latitude: float
    longitude: float
    timestamp: int
    order_id: Optional[str] = None
    region_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        data = {
            "agentId": self.agent_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp,
        }
        if self.order_id is not None:
            data["orderId"] = self.order_id
        if self.region_id is not None:
            data["regionId"] = self.region_id
        return data

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "LocationSample":
        return cls(
            agent_id=str(data["agentId"]),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            timestamp=int(data.get("timestamp") or now_ms()),
            order_id=data.get("orderId"),
            region_id=data.get("regionId"),
        )
