"""WebSocket endpoint — live case events for connected clients.

Learn: Each client connects to /ws, optionally with ?token=<access JWT>.
1. A valid token joins the socket to "user:{id}" plus "public"
2. No token, or a bad one, joins "public" only (never an error)
3. The socket is registered in the subscriber registry until disconnect
4. Client {"type": "ping"} is answered with {"type": "pong"}

Delivery happens through the registry: the broadcaster (or the Redis
relay) calls registry.publish(channel, message).
"""

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from rescuetrack.auth.dependencies import resolve_identity
from rescuetrack.errors import RescueTrackError
from rescuetrack.realtime.broadcaster import PUBLIC_CHANNEL, user_channel
from rescuetrack.realtime.registry import registry

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def case_events_websocket(websocket: WebSocket):
    """Long-lived connection — one per browser tab."""
    # ── Authentication (optional) ───────────────────────────
    identity = None
    try:
        identity = resolve_identity(websocket.query_params.get("token"))
    except RescueTrackError as e:
        logger.warning("ws.auth_failed", code=e.code)

    channels = [PUBLIC_CHANNEL]
    if identity:
        channels.append(user_channel(identity.user_id))

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    await registry.connect(websocket, channels)
    logger.info(
        "ws.connected",
        user_id=identity.user_id if identity else None,
        channels=channels,
    )

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    finally:
        await registry.disconnect(websocket)
        logger.info("ws.disconnected", user_id=identity.user_id if identity else None)
