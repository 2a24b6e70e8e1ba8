"""
Periodic eviction of callbacks nobody picked up.
"""
import threading
from typing import Optional
import structlog

log = structlog.get_logger()


class Reaper:
    """
    Runs ``engine.sweep`` on a fixed interval from a daemon timer thread.

    The next run is scheduled after the current one finishes, whether or not
    the sweep raised.
    """

    def __init__(self, engine, retention_seconds: float = 300.0, interval_seconds: float = 120.0):
        """
        Initialize reaper

        Args:
            engine: DeliveryEngine whose store is swept
            retention_seconds: Age after which a stored callback is evicted
            interval_seconds: Delay between sweeps
        """
        self._engine = engine
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._shutdown = True
        self.runs = 0

    @property
    def running(self) -> bool:
        return not self._shutdown

    def start(self) -> None:
        """Start the sweep schedule. Calling start twice is a no-op."""
        with self._timer_lock:
            if not self._shutdown:
                return
            self._shutdown = False
        log.info(
            "reaper.started",
            retention_ms=int(self.retention_seconds * 1000),
            interval_ms=int(self.interval_seconds * 1000),
        )
        self._schedule()

    def run_once(self) -> int:
        """Sweep immediately and return the number of evicted callbacks."""
        removed = self._engine.sweep(retention_seconds=self.retention_seconds)
        self.runs += 1
        if removed:
            log.info("reaper.sweep_complete", removed=removed)
        else:
            log.debug("reaper.sweep_complete", removed=0)
        return removed

    def _schedule(self) -> None:
        with self._timer_lock:
            if self._shutdown:
                return
            self._timer = threading.Timer(self.interval_seconds, self._run)
            self._timer.daemon = True
            self._timer.start()

    def _run(self) -> None:
        try:
            self.run_once()
        except Exception as e:
            log.error("reaper.sweep_failed", error=str(e), exc_info=True)
        finally:
            self._schedule()

    def shutdown(self) -> None:
        """Stop the schedule and cancel any pending sweep."""
        with self._timer_lock:
            self._shutdown = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        log.info("reaper.stopped")
