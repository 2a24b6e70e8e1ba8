"""Relay error taxonomy.

Each error carries the HTTP status the transport layer should answer with.
Push-delivery failures are deliberately absent: they are the expected
fallback path and never surface as exceptions.
"""
from typing import Iterable, List


class RelayError(Exception):
    """Base class for errors raised by the delivery engine."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingCorrelationKey(RelayError):
    """Inbound callback has no usable ``actionId``; the callback is discarded."""

    def __init__(self, message: str = "actionId is required"):
        super().__init__(message)


class InvalidArgument(RelayError):
    """Bulk consume was called with something other than a list of keys."""

    def __init__(self, message: str = "actionIds must be an array"):
        super().__init__(message)


class NotFound(RelayError):
    """No stored callback exists for the requested key."""

    status_code = 404

    def __init__(self, action_id: str, available_action_ids: Iterable[str] = ()):
        super().__init__("No callback found for this actionId")
        self.action_id = action_id
        self.available_action_ids: List[str] = sorted(available_action_ids)
