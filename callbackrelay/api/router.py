"""Callback ingestion and HTTP polling routes."""
import time
from typing import Any
from urllib.parse import parse_qsl
import orjson
import structlog
from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from .schemas import (
    BulkCheckResponse,
    BulkCheckSummary,
    CallbackAckResponse,
    CallbackMetadata,
    CallbackNotFoundResponse,
    CheckCallbackResponse,
    TestCallbackRequest,
    TestCallbackResponse,
)
from ..core.errors import NotFound
from ..services.relay import engine

log = structlog.get_logger()

router = APIRouter(tags=["callbacks"])


async def _read_payload(request: Request) -> Any:
    """
    Extract the callback payload from a request.

    JSON and form bodies are decoded; a request without a body is treated as
    a redirect-style callback and its query parameters become the payload.
    """
    body = await request.body()
    if not body:
        return dict(request.query_params)

    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(body.decode("utf-8", errors="replace")))

    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError:
        log.warning("callback.unparseable_body", size=len(body))
        return None


@router.api_route("/callback", methods=["GET", "POST", "PUT"], response_model=CallbackAckResponse)
async def receive_callback(request: Request):
    payload = await _read_payload(request)
    source = request.headers.get("user-agent") or "unknown"
    ack = engine.ingest(payload, source=source)
    return CallbackAckResponse(actionId=ack.action_id, deliveredViaPush=ack.pushed)


@router.get(
    "/check-callback/{action_id}",
    response_model=CheckCallbackResponse,
    responses={404: {"model": CallbackNotFoundResponse}},
)
async def check_callback(action_id: str):
    """
    Poll for a single callback.

    A hit removes the callback from the store; a second poll for the same
    actionId returns 404.
    """
    try:
        result = engine.consume_one(action_id)
    except NotFound as exc:
        return JSONResponse(
            status_code=404,
            content=CallbackNotFoundResponse(
                message=exc.message,
                actionId=action_id,
                availableActionIds=exc.available_action_ids,
            ).model_dump(),
        )
    return CheckCallbackResponse(
        data=result.data,
        metadata=CallbackMetadata(storedAt=result.stored_at, ageMs=result.age_ms),
    )


@router.post("/check-callbacks", response_model=BulkCheckResponse)
async def check_callbacks(body: Any = Body(None)):
    """
    Poll for several callbacks in one request.

    The body is taken as-is so that any shape other than
    ``{"actionIds": [...]}`` is reported by the engine as a 400.
    """
    action_ids = body.get("actionIds") if isinstance(body, dict) else None
    outcome = engine.consume_many(action_ids)
    return BulkCheckResponse(
        results=outcome.results,
        summary=BulkCheckSummary(
            total=outcome.total,
            found=len(outcome.found),
            notFound=len(outcome.not_found),
            foundActionIds=outcome.found,
            notFoundActionIds=outcome.not_found,
        ),
    )


@router.post("/test-callback", response_model=TestCallbackResponse)
async def test_callback(req: TestCallbackRequest | None = None):
    """Simulate a wallet callback end to end."""
    req = req or TestCallbackRequest()
    test_data = req.to_callback(now_ms=int(time.time() * 1000))
    log.info("callback.test_triggered", action_id=test_data["actionId"])

    ack = engine.ingest(test_data, source="test-endpoint")
    return TestCallbackResponse(
        testData=test_data,
        deliveredViaPush=ack.pushed,
        activeConnections=engine.registered_action_ids(),
    )
