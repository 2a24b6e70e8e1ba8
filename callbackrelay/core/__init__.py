"""Correlation and delivery core: registry, result store, reaper and engine."""
from .errors import RelayError, MissingCorrelationKey, InvalidArgument, NotFound
from .models import (
    BulkConsumeResult,
    CallbackState,
    ConsumedResult,
    IngestAck,
    StoredResult,
)
from .subscriber import Subscriber
from .registry import Registry
from .store import ResultStore
from .engine import DeliveryEngine
from .reaper import Reaper

__all__ = [
    "RelayError",
    "MissingCorrelationKey",
    "InvalidArgument",
    "NotFound",
    "BulkConsumeResult",
    "CallbackState",
    "ConsumedResult",
    "IngestAck",
    "StoredResult",
    "Subscriber",
    "Registry",
    "ResultStore",
    "DeliveryEngine",
    "Reaper",
]
