"""
Callback relay - delivers wallet-signing callbacks to the app that asked for them.

Features:
- WebSocket push delivery keyed by actionId
- HTTP polling fallback with time-bounded storage
- Structured logging with correlation IDs
- Prometheus metrics
- Health, statistics and debug endpoints
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from . import __version__
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .api.admin_router import router as admin_router
from .api.ws_router import router as ws_router
from .middleware import (
    CorrelationIdMiddleware,
    ErrorHandlerMiddleware,
    MetricsMiddleware,
    ValidationMiddleware,
    register_exception_handlers,
)
from .metrics import Metrics
from .health import health_checker
from .services.relay import engine, reaper
from .streaming.websocket import subscriber_manager

SERVICE_NAME = "callbackrelay"

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)
logger = get_logger()

metrics = Metrics(service_name=SERVICE_NAME, version=__version__)
engine.set_metrics(metrics)
subscriber_manager.set_metrics(metrics)

app = FastAPI(
    title="Callback Relay",
    version=__version__,
    description="Relays wallet-signing callbacks over WebSocket push with HTTP polling fallback",
)

# Last added runs first: CORS, errors, correlation ID, metrics, validation
app.add_middleware(ValidationMiddleware, max_body_size=settings.MAX_CALLBACK_SIZE)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(router)
app.include_router(admin_router)
app.include_router(ws_router)

metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Health snapshot.

    Reports registered actionIds, stored callbacks (with the oldest one),
    open WebSocket count and process uptime/memory.
    """
    logger.debug("health_check")
    return health_checker.snapshot(engine, subscriber_manager.connection_count)


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    result = health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(status_code=status_code, content=result)


@app.on_event("startup")
async def startup_event():
    """Start the reaper and log the effective configuration."""
    reaper.start()
    metrics.update_system_metrics()
    logger.info(
        "service_starting",
        version=__version__,
        env=settings.ENV,
        port=settings.SERVICE_PORT,
        retention_ms=settings.RETENTION_WINDOW_MS,
        sweep_interval_ms=settings.SWEEP_INTERVAL_MS,
        push_event=settings.PUSH_EVENT_NAME,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel the reaper timer."""
    logger.info("service_stopping")
    reaper.shutdown()
    metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "callbackrelay.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENV == "dev",
    )


if __name__ == "__main__":
    run()
