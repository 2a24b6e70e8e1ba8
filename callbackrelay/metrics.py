"""
Prometheus metrics for the callback relay.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the callback relay service.
    """

    def __init__(self, service_name: str = "callbackrelay", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Relay metrics
        self.callbacks_received_total = Counter(
            "callbackrelay_callbacks_received_total",
            "Callbacks accepted, by whether they were pushed immediately",
            ["delivery"],
            registry=self.registry,
        )

        self.pushes_total = Counter(
            "callbackrelay_pushes_total",
            "Callbacks pushed over WebSocket, by what triggered the push",
            ["trigger"],
            registry=self.registry,
        )

        self.polls_total = Counter(
            "callbackrelay_polls_total",
            "Polling lookups, by mode and result",
            ["mode", "result"],
            registry=self.registry,
        )

        self.callbacks_expired_total = Counter(
            "callbackrelay_callbacks_expired_total",
            "Stored callbacks evicted by the reaper",
            registry=self.registry,
        )

        self.stored_callbacks = Gauge(
            "callbackrelay_stored_callbacks",
            "Callbacks currently waiting for pickup",
            registry=self.registry,
        )

        self.active_subscribers = Gauge(
            "callbackrelay_active_subscribers",
            "actionIds with a registered WebSocket subscriber",
            registry=self.registry,
        )

        self.websocket_connections = Gauge(
            "callbackrelay_websocket_connections",
            "Open WebSocket connections",
            registry=self.registry,
        )

        # System Metrics
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update process metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
        except psutil.Error:
            # Process metrics are best-effort
            pass

    def record_callback(self, pushed: bool):
        self.callbacks_received_total.labels(delivery="push" if pushed else "stored").inc()

    def record_push(self, trigger: str):
        self.pushes_total.labels(trigger=trigger).inc()

    def record_poll(self, mode: str, found: bool, count: int = 1):
        if count:
            self.polls_total.labels(mode=mode, result="found" if found else "not_found").inc(count)

    def record_expired(self, count: int):
        self.callbacks_expired_total.inc(count)

    def set_relay_sizes(self, subscribers: int, stored: int):
        """Set the registry and store size gauges."""
        self.active_subscribers.set(subscribers)
        self.stored_callbacks.set(stored)

    def set_websocket_connections(self, count: int):
        self.websocket_connections.set(count)
