from pydantic import BaseModel, Field
from typing import Any, Dict, List
from datetime import datetime, timezone
from enum import Enum


def iso_timestamp(ts: float) -> str:
    """Render an epoch timestamp as ISO-8601 UTC with a trailing Z."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class CallbackState(str, Enum):
    """Per-key delivery state derived from registry and store membership."""

    UNKNOWN = "unknown"
    AWAITING_EVENT = "awaiting_event"
    AWAITING_PICKUP = "awaiting_pickup"
    PAIRED = "paired"

    @classmethod
    def from_flags(cls, registered: bool, stored: bool) -> "CallbackState":
        if registered and stored:
            return cls.PAIRED
        if registered:
            return cls.AWAITING_EVENT
        if stored:
            return cls.AWAITING_PICKUP
        return cls.UNKNOWN


class StoredResult(BaseModel):
    action_id: str
    payload: Dict[str, Any]
    timestamp: float = Field(..., description="Arrival time, epoch seconds")
    received: str = Field(..., description="Arrival time, ISO-8601 UTC")
    source: str = Field("unknown", description="Free-form origin tag")

    def age_ms(self, now: float) -> int:
        return max(0, int((now - self.timestamp) * 1000))

    def metadata(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "received": self.received, "source": self.source}


class IngestAck(BaseModel):
    action_id: str
    stored_for_polling: bool = True
    pushed: bool = False


class ConsumedResult(BaseModel):
    action_id: str
    data: Dict[str, Any]
    stored_at: str
    age_ms: int


class BulkConsumeResult(BaseModel):
    results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    found: List[str] = Field(default_factory=list)
    not_found: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.found) + len(self.not_found)
