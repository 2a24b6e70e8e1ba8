"""Diagnostic routes: state dump, manual reset and statistics."""
from fastapi import APIRouter, Depends, HTTPException
import structlog
from .schemas import CleanupResponse
from ..config import get_settings
from ..health import health_checker
from ..services.relay import engine
from ..streaming.websocket import subscriber_manager

log = structlog.get_logger()

router = APIRouter(tags=["diagnostics"])


def require_diagnostics():
    """Hide state-leaking routes unless diagnostics are enabled."""
    if not get_settings().ENABLE_DIAGNOSTICS:
        raise HTTPException(status_code=404, detail="Not Found")


@router.get("/debug", dependencies=[Depends(require_diagnostics)])
async def debug():
    """
    Dump both relay maps.

    Development only: the response contains every stored callback payload.
    """
    state = engine.snapshot()
    subscribers, stored = engine.counts()
    log.info("debug.requested")
    return {
        **state,
        "socketIds": subscriber_manager.handle_ids(),
        "stats": {
            "webSocketConnections": subscribers,
            "storedCallbacks": stored,
            "totalSockets": subscriber_manager.connection_count,
        },
    }


@router.post("/cleanup", response_model=CleanupResponse, dependencies=[Depends(require_diagnostics)])
async def cleanup():
    """Drop every registration and stored callback."""
    subscribers, stored = engine.reset()
    log.info("cleanup.performed", subscribers=subscribers, stored_callbacks=stored)
    return CleanupResponse(cleaned={"webSocketConnections": subscribers, "storedCallbacks": stored})


@router.get("/stats")
async def stats():
    return health_checker.stats(engine, subscriber_manager.connection_count)
