"""
WebSocket endpoint for the real-time relay.

``create_app`` mounts this at ``WS_PATH`` (default ``/ws``). Clients may pass
``?token=<jwt>``. A valid token binds the connection to that user, and the
relay then rejects messages that claim to be from someone else. With
``WS_REQUIRE_AUTH`` enabled, upgrades without a valid token are refused with
close code 4001.
"""

import logging

from fastapi import HTTPException, Request, WebSocket, WebSocketDisconnect

from medresponse.api.middleware.auth import decode_token
from medresponse.api.websocket.backoff import ReconnectPolicy
from medresponse.api.websocket.registry import ClientConnection
from medresponse.api.websocket.relay import BroadcastRelay

logger = logging.getLogger(__name__)


def get_relay(request: Request) -> BroadcastRelay:
    """Dependency giving REST handlers access to the application's relay."""
    return request.app.state.relay


async def relay_socket(websocket: WebSocket):
    settings = websocket.app.state.settings
    relay: BroadcastRelay = websocket.app.state.relay

    user_id = role = None
    token = websocket.query_params.get("token")
    if token:
        try:
            claims = decode_token(token)
        except HTTPException:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return
        user_id, role = claims.user_id, claims.role.value
    elif settings.WS_REQUIRE_AUTH:
        await websocket.close(code=4001, reason="Authentication required")
        return

    await websocket.accept()
    connection = ClientConnection(websocket, user_id=user_id, role=role)
    relay.registry.register(connection)

    policy = ReconnectPolicy(
        base_delay=settings.CLIENT_RECONNECT_BASE_DELAY_SECONDS,
        max_attempts=settings.CLIENT_MAX_RECONNECT_ATTEMPTS,
    )
    try:
        await connection.send_json({
            "type": "connected",
            "connection_id": connection.connection_id,
            "user_id": user_id,
            "reconnect": policy.as_dict(),
        })
        while True:
            raw = await websocket.receive_text()
            await relay.handle_text(connection, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error on %r: %s", connection, e)
    finally:
        relay.registry.unregister(connection)
