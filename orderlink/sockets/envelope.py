"""
Message Envelope - wire format for socket frames.

Server frames:

    {
        "id": null,
        "type": "event",
        "event": "new-message",
        "payload": <any JSON value>,
        "meta": {"ts": 1700000000},
        "ack": false
    }

Clients may send the short form ``{"event": "...", "data": ...}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union
import json

from .faults import WS_MESSAGE_INVALID


class MessageType(str, Enum):
    """Message type discriminator."""
    EVENT = "event"
    SYSTEM = "system"
    CONTROL = "control"


@dataclass
class MessageEnvelope:
    """
    A single event frame.

    ``payload`` is any JSON value: chat clients send bare order ids as
    well as objects.
    """

    type: MessageType
    event: str
    payload: Any = None
    id: Optional[str] = None
    ack: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if "ts" not in self.meta:
            self.meta["ts"] = int(datetime.now(timezone.utc).timestamp())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "event": self.event,
            "payload": self.payload,
            "meta": self.meta,
            "ack": self.ack,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MessageEnvelope:
        """
        Accepts both the protocol form (``payload``) and the client
        shorthand (``data``).
        """
        if not isinstance(data, dict) or not isinstance(data.get("event"), str):
            raise WS_MESSAGE_INVALID("missing event name")
        payload = data["payload"] if "payload" in data else data.get("data")
        try:
            msg_type = MessageType(data.get("type", "event"))
        except ValueError:
            raise WS_MESSAGE_INVALID(f"unknown type {data.get('type')!r}")
        meta = data.get("meta")
        return cls(
            id=data.get("id"),
            type=msg_type,
            event=data["event"],
            payload=payload,
            meta=dict(meta) if isinstance(meta, dict) else {},
            ack=bool(data.get("ack", False)),
        )


# Message codecs

class MessageCodec(Protocol):

    def encode(self, envelope: MessageEnvelope) -> str:
        ...

    def decode(self, data: Union[str, bytes]) -> MessageEnvelope:
        ...


class JSONCodec:
    """JSON codec producing text frames."""

    def encode(self, envelope: MessageEnvelope) -> str:
        return json.dumps(envelope.to_dict(), default=str)

    def decode(self, data: Union[str, bytes]) -> MessageEnvelope:
        try:
            if isinstance(data, (bytes, bytearray)):
                data = data.decode("utf-8")
            obj = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WS_MESSAGE_INVALID(str(e))
        return MessageEnvelope.from_dict(obj)
