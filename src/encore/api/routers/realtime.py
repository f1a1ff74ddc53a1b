"""WebSocket transport for the real-time gateway.

Clients connect to /ws with their access token as "?token=" or as an
"Authorization: Bearer" header. Handshakes without a resolvable user id are
refused with close code 1008 before any connection state exists.

Frames in both directions are JSON text: {"event": <name>, "data": <payload>}.
"""

from __future__ import annotations

import logging
from typing import Annotated

import orjson
from fastapi import APIRouter, Depends, Query, WebSocket, status

from encore.api.deps import get_gateway
from encore.core.errors import AuthenticationError
from encore.observability.logging import LogContext
from encore.realtime.gateway import Gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def handshake_token(websocket: WebSocket, query_token: str | None) -> str | None:
    if query_token:
        return query_token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    gateway: Annotated[Gateway, Depends(get_gateway)],
    token: str | None = Query(default=None),
) -> None:
    """Real-time channel for presence, chat delivery and notifications."""
    try:
        user_id = gateway.authenticate(handshake_token(websocket, token))
    except AuthenticationError as e:
        logger.info(f"Refused WebSocket handshake: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    with LogContext(user_id=user_id):
        connection = await gateway.connect(websocket, user_id)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    logger.warning(f"Ignoring binary frame from {user_id}")
                    continue

                try:
                    frame = orjson.loads(raw)
                except orjson.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON frame from {user_id}")
                    continue
                if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                    logger.warning(f"Ignoring malformed frame from {user_id}")
                    continue

                await gateway.handle_client_event(connection, frame["event"], frame.get("data"))
        finally:
            await gateway.disconnect(connection)
