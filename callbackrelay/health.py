"""
Health, statistics and readiness reporting.
"""
import os
import platform
import time
from datetime import datetime, timezone
from typing import Dict, Any
import psutil
from .core.engine import DeliveryEngine
from .logging import get_logger

logger = get_logger()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the callback relay.

    Provides:
    - Health snapshot (relay state, process uptime and memory)
    - Aggregate statistics (ages of stored callbacks)
    - Readiness checks (can the service handle traffic?)
    """

    def __init__(self, service_name: str = "callbackrelay", version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version
        self._started = time.time()

    def uptime(self) -> float:
        return round(time.time() - self._started, 3)

    def memory(self) -> Dict[str, Any]:
        """Resident and virtual memory of this process in bytes."""
        try:
            info = psutil.Process(os.getpid()).memory_info()
            return {"rss": info.rss, "vms": info.vms}
        except psutil.Error as e:
            logger.warning("memory_probe_failed", error=str(e))
            return {}

    def snapshot(self, engine: DeliveryEngine, socket_count: int) -> Dict[str, Any]:
        """
        Health snapshot of both delivery paths.

        Args:
            engine: Delivery engine to report on
            socket_count: Number of open WebSocket connections

        Returns:
            dict: Counts, key lists, oldest stored callback and process info
        """
        registered = engine.registered_action_ids()
        stored = engine.stored_action_ids()
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _utc_now(),
            "webSocket": {
                "activeConnections": len(registered),
                "connectionIds": registered,
                "socketCount": socket_count,
            },
            "httpPolling": {
                "storedCallbacks": len(stored),
                "callbackActionIds": stored,
                "oldestCallback": engine.oldest(),
            },
            "system": {
                "uptime": self.uptime(),
                "memory": self.memory(),
                "pythonVersion": platform.python_version(),
            },
        }

    def stats(self, engine: DeliveryEngine, socket_count: int) -> Dict[str, Any]:
        """Current counts plus the age of every stored callback."""
        subscribers, stored = engine.counts()
        return {
            "current": {
                "webSocketConnections": subscribers,
                "storedCallbacks": stored,
                "connectedSockets": socket_count,
            },
            "callbackAges": engine.ages(),
            "server": {
                "uptime": self.uptime(),
                "memory": self.memory(),
            },
        }

    def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _utc_now(),
            "checks": checks,
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}


# Global health checker instance
health_checker = HealthChecker()
