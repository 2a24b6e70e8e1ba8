"""WebSocket push channel with rate limiting and keepalive."""
import asyncio
import time
import uuid
import structlog
import orjson
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
from typing import Any, Dict, List
from ..core.engine import DeliveryEngine
from ..core.subscriber import Subscriber

log = structlog.get_logger()


class WebSocketSubscriber(Subscriber):
    """
    Push-channel handle backed by one WebSocket connection.

    Outgoing messages go through an outbox queue drained by ``pump``, so
    ``push`` never waits on the network and may be called from any thread.
    """

    def __init__(self, websocket: WebSocket, event_name: str = "tronlink_callback"):
        self.websocket = websocket
        self.event_name = event_name
        self.handle_id = uuid.uuid4().hex
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def push(self, payload: Dict[str, Any]) -> None:
        self.send({"type": self.event_name, "data": payload})

    def send(self, message: Dict[str, Any] | str) -> None:
        """Queue a message for the client (thread-safe, non-blocking)."""
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, message)

    async def pump(self):
        """Send queued messages until the connection fails or is closed."""
        while True:
            message = await self._outbox.get()
            if isinstance(message, str):
                text = message
            else:
                text = orjson.dumps(message).decode()
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                log.warning("websocket.send_failed", handle=self.handle_id, error=str(e))
                self._closed = True
                return

    def close(self):
        self._closed = True


class SubscriberManager:
    """
    Tracks open WebSocket subscribers.

    Registration of actionIds lives in the delivery engine; this only knows
    which connections exist.
    """

    def __init__(self):
        self._connections: Dict[str, WebSocketSubscriber] = {}
        self._metrics = None

    def set_metrics(self, metrics):
        self._metrics = metrics

    async def connect(self, websocket: WebSocket, event_name: str = "tronlink_callback") -> WebSocketSubscriber:
        """
        Accept a WebSocket connection and wrap it in a subscriber.

        Args:
            websocket: WebSocket connection to accept
            event_name: Message type used for callback deliveries
        """
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket, event_name=event_name)
        self._connections[subscriber.handle_id] = subscriber
        self._record()
        log.info("websocket.connected", handle=subscriber.handle_id, total_connections=len(self._connections))
        return subscriber

    def disconnect(self, subscriber: WebSocketSubscriber):
        """
        Forget a subscriber.

        Args:
            subscriber: Subscriber whose connection closed
        """
        subscriber.close()
        self._connections.pop(subscriber.handle_id, None)
        self._record()
        log.info("websocket.disconnected", handle=subscriber.handle_id, total_connections=len(self._connections))

    def _record(self):
        if self._metrics is not None:
            self._metrics.set_websocket_connections(len(self._connections))

    @property
    def connection_count(self) -> int:
        """Get number of open connections."""
        return len(self._connections)

    def handle_ids(self) -> List[str]:
        return list(self._connections.keys())


# Global subscriber manager instance
subscriber_manager = SubscriberManager()


class RateLimiter:
    """Simple rate limiter for WebSocket messages."""

    def __init__(self, max_messages: int = 100, window_seconds: int = 60):
        """
        Initialize rate limiter.

        Args:
            max_messages: Maximum messages allowed in window
            window_seconds: Time window in seconds
        """
        self.max_messages = max_messages
        self.window_seconds = window_seconds
        self._message_times: list[float] = []

    def check_limit(self) -> bool:
        """
        Check if rate limit is exceeded.

        Returns:
            True if within limit, False if exceeded
        """
        now = time.time()
        cutoff = now - self.window_seconds

        self._message_times = [t for t in self._message_times if t > cutoff]

        if len(self._message_times) >= self.max_messages:
            return False

        self._message_times.append(now)
        return True

    def remaining(self) -> int:
        """Get number of remaining messages in current window."""
        now = time.time()
        cutoff = now - self.window_seconds
        recent = len([t for t in self._message_times if t > cutoff])
        return max(0, self.max_messages - recent)


def handle_client_message(engine: DeliveryEngine, subscriber: WebSocketSubscriber, raw: str):
    """
    Act on one text frame from a client.

    Accepts ``{"type": "register", "actionId": ...}``, JSON or plain-text
    ping/pong. Anything else is answered with an error message.
    """
    text = raw.strip()
    if text == "ping":
        subscriber.send("pong")
        return
    if text == "pong":
        log.debug("websocket.pong_received", handle=subscriber.handle_id)
        return

    try:
        message = orjson.loads(text)
    except orjson.JSONDecodeError:
        subscriber.send({"type": "error", "message": "Message is not valid JSON"})
        return
    if not isinstance(message, dict):
        subscriber.send({"type": "error", "message": "Message must be a JSON object"})
        return

    kind = message.get("type")
    if kind == "register":
        action_id = message.get("actionId")
        if not isinstance(action_id, str) or not action_id:
            subscriber.send({"type": "error", "message": "actionId is required"})
            return
        # Acknowledge first so a catch-up delivery arrives after it
        subscriber.send({"type": "registered", "actionId": action_id})
        engine.register(action_id, subscriber)
    elif kind == "ping":
        subscriber.send({"type": "pong", "ts": time.time()})
    elif kind == "pong":
        log.debug("websocket.pong_received", handle=subscriber.handle_id)
    else:
        subscriber.send({"type": "error", "message": f"Unknown message type: {kind}"})


async def _keepalive(subscriber: WebSocketSubscriber, interval: float):
    while True:
        await asyncio.sleep(interval)
        if not subscriber.is_open:
            return
        subscriber.send({"type": "ping", "ts": time.time()})


async def handle_websocket_session(
    websocket: WebSocket,
    engine: DeliveryEngine,
    event_name: str = "tronlink_callback",
    ping_interval: int = 30,
    rate_limit_messages: int = 100,
    rate_limit_window: int = 60,
):
    """
    Serve one push-channel connection until the client goes away.

    Args:
        websocket: WebSocket connection
        engine: Delivery engine to register actionIds with
        event_name: Message type used for callback deliveries
        ping_interval: Seconds between ping messages (keepalive)
        rate_limit_messages: Max client messages per window
        rate_limit_window: Rate limit window in seconds
    """
    rate_limiter = RateLimiter(rate_limit_messages, rate_limit_window)
    subscriber = await subscriber_manager.connect(websocket, event_name=event_name)

    subscriber.send({
        "type": "welcome",
        "message": "Connected to callback relay",
        "handleId": subscriber.handle_id,
        "rate_limit": {
            "max_messages": rate_limit_messages,
            "window_seconds": rate_limit_window,
        },
    })
    sender = asyncio.create_task(subscriber.pump(), name=f"websocket.pump.{subscriber.handle_id}")
    keepalive = asyncio.create_task(
        _keepalive(subscriber, ping_interval),
        name=f"websocket.keepalive.{subscriber.handle_id}",
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            if raw is None:
                continue

            if not rate_limiter.check_limit():
                subscriber.send({
                    "type": "error",
                    "message": "Rate limit exceeded",
                    "retry_after": rate_limit_window,
                })
                continue

            handle_client_message(engine, subscriber, raw)

    except WebSocketDisconnect:
        log.info("websocket.client_disconnected", handle=subscriber.handle_id)
    except Exception as e:
        log.error("websocket.error", handle=subscriber.handle_id, error=str(e), exc_info=True)
    finally:
        keepalive.cancel()
        sender.cancel()
        engine.disconnect(subscriber)
        subscriber_manager.disconnect(subscriber)
        await asyncio.gather(keepalive, sender, return_exceptions=True)
