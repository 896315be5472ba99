"""FastAPI application serving the world chat room over WebSockets."""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import load_config, room_policy
from .events import DisconnectEvent, parse_event
from .room import ChatRoom
from .transport import ConnectionHub

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic responses
# -----------------------------
class HealthResponse(BaseModel):
    ok: bool
    connections: int
    online: int


class StatsResponse(BaseModel):
    online: int
    users: list[str]
    typing: list[str]
    messages: int
    capacity: int
    retention_seconds: float


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    room: Optional[ChatRoom] = None,
    hub: Optional[ConnectionHub] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    # CORS
    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])

    # Shared state, created once per app
    if room is None:
        hub = hub or ConnectionHub(int(cfg.get("server", {}).get("send_queue_size", 256)))
        room = ChatRoom(hub, room_policy(cfg))
    else:
        hub = room.outbox  # type: ignore[assignment]

    app = FastAPI(title="World Chat Server", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.room = room
    app.state.hub = hub

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "connections": len(hub),
            "online": len(room.online_users()),
        }

    @app.get("/config")
    def get_config() -> JSONResponse:
        return JSONResponse(cfg)

    @app.get("/stats", response_model=StatsResponse)
    def stats() -> Dict[str, Any]:
        return room.stats()

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        queue = hub.register(connection_id)
        writer = asyncio.create_task(hub.pump(connection_id, websocket, queue))
        logger.debug("Connection %s opened", connection_id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                text = message.get("text")
                if text is None:
                    logger.debug("Dropping non-text frame from %s", connection_id)
                    continue
                try:
                    event = parse_event(json.loads(text))
                except ValueError as e:
                    # Malformed frames are ignored, the socket stays open.
                    logger.debug("Dropping frame from %s: %s", connection_id, e)
                    continue
                room.handle(connection_id, event)
        except WebSocketDisconnect:
            logger.debug("Connection %s closed", connection_id)
        finally:
            room.handle(connection_id, DisconnectEvent())
            hub.unregister(connection_id)
            await writer

    return app
