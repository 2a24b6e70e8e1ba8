"""WebSocket route for push delivery of callbacks."""
from fastapi import APIRouter, WebSocket
from ..config import get_settings
from ..services.relay import engine
from ..streaming.websocket import handle_websocket_session

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time callback delivery.

    After connecting, a client registers the actionId it is waiting for and
    receives the callback as soon as it arrives (or immediately, if it
    already arrived).

    Example client (JavaScript):
    ```javascript
    const ws = new WebSocket('ws://localhost:3005/ws');
    ws.onopen = () => ws.send(JSON.stringify({type: 'register', actionId}));
    ws.onmessage = (event) => {
        const msg = JSON.parse(event.data);
        if (msg.type === 'tronlink_callback') {
            handleCallback(msg.data);
        }
    };
    ```
    """
    settings = get_settings()
    await handle_websocket_session(
        websocket,
        engine,
        event_name=settings.PUSH_EVENT_NAME,
        ping_interval=settings.WS_PING_INTERVAL,
        rate_limit_messages=settings.WS_RATE_LIMIT_MESSAGES,
        rate_limit_window=settings.WS_RATE_LIMIT_WINDOW,
    )
