"""
Delivery engine: correlates inbound callbacks with waiting subscribers.

Every callback is stored for polling first, then pushed to the registered
subscriber if its channel is open. Per-key state is never materialized; it is
derived from registry and store membership (see ``CallbackState``).
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple
import structlog
from .errors import InvalidArgument, MissingCorrelationKey, NotFound
from .models import BulkConsumeResult, CallbackState, ConsumedResult, IngestAck
from .registry import Registry
from .store import ResultStore
from .subscriber import Subscriber

log = structlog.get_logger()

DEFAULT_RETENTION_SECONDS = 300.0


class DeliveryEngine:
    """
    Push-first, pull-fallback delivery of callbacks keyed by actionId.

    All operations hold one re-entrant lock for their whole read-modify-write
    sequence, so the registry and the store always change together and the
    reaper thread can sweep safely.
    """

    def __init__(
        self,
        registry: Registry | None = None,
        store: ResultStore | None = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
        metrics=None,
    ):
        """
        Initialize delivery engine.

        Args:
            registry: Subscriber registry (defaults to an empty one)
            store: Result store (defaults to an empty one sharing ``clock``)
            retention_seconds: Default retention window used by ``sweep``
            clock: Source of epoch-second timestamps
            metrics: Optional ``Metrics`` instance to record relay activity
        """
        self._clock = clock
        self.registry = registry if registry is not None else Registry()
        self.store = store if store is not None else ResultStore(clock=clock)
        self.retention_seconds = retention_seconds
        self._metrics = metrics
        self._lock = threading.RLock()

    def set_metrics(self, metrics) -> None:
        self._metrics = metrics
        self._update_gauges()

    # Push path

    def ingest(self, payload: Any, source: str = "unknown") -> IngestAck:
        """
        Accept an inbound callback.

        Args:
            payload: Callback body; must be a mapping with a non-empty ``actionId``
            source: Origin tag stored alongside the payload

        Returns:
            Acknowledgement with the actionId and whether it was pushed

        Raises:
            MissingCorrelationKey: If the payload has no usable actionId
        """
        action_id = _extract_action_id(payload)
        if action_id is None:
            log.warning("callback.rejected", reason="missing_action_id")
            raise MissingCorrelationKey()

        with self._lock:
            self.store.put(action_id, payload, source=source)
            log.info(
                "callback.stored",
                action_id=action_id,
                source=source,
                stored_callbacks=len(self.store),
            )

            pushed = False
            handle = self.registry.lookup(action_id)
            if handle is None:
                log.info(
                    "callback.no_subscriber",
                    action_id=action_id,
                    registered_action_ids=self.registry.keys(),
                )
            else:
                pushed = self._push(action_id, handle, payload, trigger="ingest")

            if self._metrics is not None:
                self._metrics.record_callback(pushed=pushed)
            self._update_gauges()

        return IngestAck(action_id=action_id, stored_for_polling=True, pushed=pushed)

    def register(self, action_id: str, handle: Subscriber) -> bool:
        """
        Register a subscriber for an actionId.

        If a callback for the key is already stored, it is pushed to the new
        subscriber immediately and the registration is cleared. The stored
        copy stays available for polling.

        Returns:
            True if a stored callback was pushed as part of registration
        """
        with self._lock:
            self.registry.register(action_id, handle)
            log.info(
                "subscriber.registered",
                action_id=action_id,
                handle=handle.handle_id,
                registered_action_ids=self.registry.keys(),
            )

            pushed = False
            stored = self.store.get(action_id)
            if stored is not None:
                log.info("callback.catch_up", action_id=action_id, handle=handle.handle_id)
                pushed = self._push(action_id, handle, stored.payload, trigger="register")

            self._update_gauges()
            return pushed

    def disconnect(self, handle: Subscriber) -> Optional[str]:
        """Drop whatever registration points at a closed subscriber."""
        with self._lock:
            action_id = self.registry.unregister_by_handle(handle)
            if action_id is not None:
                log.info("subscriber.unregistered", action_id=action_id, handle=handle.handle_id)
            self._update_gauges()
            return action_id

    def _push(self, action_id: str, handle: Subscriber, payload: Dict[str, Any], trigger: str) -> bool:
        # Caller holds the lock. A closed channel can never deliver, so its
        # registration for this key is dropped here.
        if not handle.is_open:
            log.info("callback.push_skipped", action_id=action_id, handle=handle.handle_id, reason="channel_closed")
            self.registry.unregister(action_id)
            return False
        try:
            handle.push(payload)
        except Exception as e:
            log.warning(
                "callback.push_failed",
                action_id=action_id,
                handle=handle.handle_id,
                error=str(e),
            )
            return False

        self.registry.unregister(action_id)
        log.info("callback.pushed", action_id=action_id, handle=handle.handle_id, trigger=trigger)
        if self._metrics is not None:
            self._metrics.record_push(trigger)
        return True

    # Pull path

    def consume_one(self, action_id: str) -> ConsumedResult:
        """
        Take the stored callback for an actionId.

        Raises:
            NotFound: If nothing is stored for the key
        """
        return self._consume(action_id, mode="single")

    def _consume(self, action_id: str, mode: str) -> ConsumedResult:
        with self._lock:
            stored = self.store.take(action_id)
            if stored is None:
                log.info("callback.not_found", action_id=action_id, mode=mode)
                if self._metrics is not None:
                    self._metrics.record_poll(mode, found=False)
                raise NotFound(action_id, self.store.peek_all_keys())

            now = self._clock()
            log.info("callback.consumed", action_id=action_id, mode=mode, age_ms=stored.age_ms(now))
            if self._metrics is not None:
                self._metrics.record_poll(mode, found=True)
            self._update_gauges()
            return ConsumedResult(
                action_id=action_id,
                data=stored.payload,
                stored_at=stored.received,
                age_ms=stored.age_ms(now),
            )

    def consume_many(self, action_ids: Any) -> BulkConsumeResult:
        """
        Take stored callbacks for several actionIds at once.

        Each key is consumed independently; misses are reported per key and
        never fail the batch.

        Raises:
            InvalidArgument: If ``action_ids`` is not a list or tuple
        """
        if not isinstance(action_ids, (list, tuple)):
            raise InvalidArgument()

        outcome = BulkConsumeResult()
        with self._lock:
            for action_id in action_ids:
                key = str(action_id)
                try:
                    result = self._consume(key, mode="bulk")
                except NotFound:
                    outcome.results[key] = {"success": False, "message": "No callback found"}
                    outcome.not_found.append(key)
                    continue
                outcome.results[key] = {
                    "success": True,
                    "data": result.data,
                    "metadata": {"storedAt": result.stored_at, "ageMs": result.age_ms},
                }
                outcome.found.append(key)

            log.info(
                "callback.bulk_consumed",
                found=len(outcome.found),
                not_found=len(outcome.not_found),
            )
        return outcome

    # Maintenance

    def sweep(self, now: float | None = None, retention_seconds: float | None = None) -> int:
        """
        Evict stored callbacks older than the retention window.

        Returns:
            Number of callbacks removed
        """
        with self._lock:
            now = self._clock() if now is None else now
            window = self.retention_seconds if retention_seconds is None else retention_seconds
            removed = self.store.sweep(now, window)
            if removed and self._metrics is not None:
                self._metrics.record_expired(removed)
            self._update_gauges()
            return removed

    def reset(self) -> Tuple[int, int]:
        """
        Clear every registration and stored callback.

        Returns:
            (registrations removed, stored callbacks removed)
        """
        with self._lock:
            subscribers = self.registry.clear()
            stored = self.store.clear()
            log.info("relay.reset", subscribers=subscribers, stored_callbacks=stored)
            self._update_gauges()
            return subscribers, stored

    # Introspection

    def state(self, action_id: str) -> CallbackState:
        with self._lock:
            return CallbackState.from_flags(action_id in self.registry, action_id in self.store)

    def registered_action_ids(self) -> list:
        with self._lock:
            return self.registry.keys()

    def stored_action_ids(self) -> list:
        with self._lock:
            return sorted(self.store.peek_all_keys())

    def counts(self) -> Tuple[int, int]:
        with self._lock:
            return len(self.registry), len(self.store)

    def oldest(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            oldest = self.store.oldest()
            return oldest.metadata() if oldest is not None else None

    def ages(self) -> list:
        with self._lock:
            return self.store.ages(self._clock())

    def snapshot(self) -> Dict[str, Any]:
        """Raw contents of both maps. Exposes every stored payload."""
        with self._lock:
            return {
                "activeConnections": {k: h.handle_id for k, h in self.registry.items()},
                "storedCallbacks": {r.action_id: r.payload for r in self.store.values()},
                "callbackMetadata": {r.action_id: r.metadata() for r in self.store.values()},
            }

    def _update_gauges(self) -> None:
        if self._metrics is not None:
            self._metrics.set_relay_sizes(subscribers=len(self.registry), stored=len(self.store))


def _extract_action_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    action_id = payload.get("actionId")
    if not isinstance(action_id, str) or not action_id:
        return None
    return action_id
