"""Process-wide delivery engine and reaper built from configuration."""
import structlog
from ..config import get_settings
from ..core.engine import DeliveryEngine
from ..core.reaper import Reaper

log = structlog.get_logger()
settings = get_settings()


def create_engine() -> DeliveryEngine:
    """Create an empty delivery engine using the configured retention window."""
    return DeliveryEngine(retention_seconds=settings.retention_window_seconds)


def create_reaper(target: DeliveryEngine) -> Reaper:
    """Create a reaper for ``target`` using the configured schedule."""
    return Reaper(
        target,
        retention_seconds=settings.retention_window_seconds,
        interval_seconds=settings.sweep_interval_seconds,
    )


# Global relay instances; both maps start empty at process start
engine = create_engine()
reaper = create_reaper(engine)
