"""
In-memory store of callbacks awaiting pickup by HTTP polling.
"""
import time
from typing import Any, Callable, Dict, List, Optional, Set
import structlog
from .models import StoredResult, iso_timestamp

log = structlog.get_logger()


class ResultStore:
    """
    Holds delivered-but-unconsumed callbacks with their arrival metadata.

    Not synchronized on its own; the delivery engine serializes access.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize result store

        Args:
            clock: Source of epoch-second timestamps (injectable for tests)
        """
        self._results: Dict[str, StoredResult] = {}
        self._clock = clock

    def put(self, action_id: str, payload: Dict[str, Any], source: str = "unknown") -> StoredResult:
        """
        Store a callback, overwriting any earlier one for the same actionId.

        Args:
            action_id: Correlation key
            payload: Callback payload, stored as received
            source: Origin tag describing where the callback came from

        Returns:
            The stored result with a fresh arrival timestamp
        """
        now = self._clock()
        result = StoredResult(
            action_id=action_id,
            payload=payload,
            timestamp=now,
            received=iso_timestamp(now),
            source=source,
        )
        self._results[action_id] = result
        return result

    def get(self, action_id: str) -> Optional[StoredResult]:
        return self._results.get(action_id)

    def take(self, action_id: str) -> Optional[StoredResult]:
        """Remove and return the stored result for an actionId."""
        return self._results.pop(action_id, None)

    def peek_all_keys(self) -> Set[str]:
        return set(self._results.keys())

    def values(self) -> List[StoredResult]:
        return list(self._results.values())

    def oldest(self) -> Optional[StoredResult]:
        if not self._results:
            return None
        return min(self._results.values(), key=lambda r: r.timestamp)

    def ages(self, now: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        List the age of every stored callback.

        Args:
            now: Reference time (defaults to the store clock)

        Returns:
            One entry per callback with actionId, ageMs and receivedAt
        """
        now = self._clock() if now is None else now
        return [
            {"actionId": r.action_id, "ageMs": r.age_ms(now), "receivedAt": r.received}
            for r in self._results.values()
        ]

    def clear(self) -> int:
        count = len(self._results)
        self._results.clear()
        return count

    def sweep(self, now: float, retention_seconds: float) -> int:
        """
        Remove every callback older than the retention window.

        An entry that cannot be evaluated is logged and skipped; the sweep
        carries on with the remaining entries.

        Args:
            now: Reference time in epoch seconds
            retention_seconds: Maximum age before a callback is evicted

        Returns:
            Number of callbacks removed
        """
        removed = 0
        for action_id, result in list(self._results.items()):
            try:
                if now - result.timestamp > retention_seconds:
                    del self._results[action_id]
                    removed += 1
                    log.info(
                        "callback.expired",
                        action_id=action_id,
                        age_ms=result.age_ms(now),
                    )
            except Exception as e:
                log.error("callback.expire_failed", action_id=action_id, error=str(e))
        return removed

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, action_id: str) -> bool:
        return action_id in self._results
