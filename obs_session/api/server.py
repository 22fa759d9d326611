"""
api/server.py — FastAPI bridge between a UI and the OBS session.

  - Read-only status snapshot (status, last error, invalid scene flag)
  - Connect / disconnect on demand (no automatic reconnect)
  - The four OBS commands: video settings, scene items, screenshot, item transform
  - /ws pushes a status snapshot on every connection status change
  - Optional Bearer API key (?token= on the WebSocket)
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from obs_session import __version__
from obs_session.config import get_settings
from obs_session.core import ErrorKind, OBSError, OBSSession, get_obs_session

log = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.DISCONNECTED: 503,
    ErrorKind.AUTHENTICATION_REJECTED: 401,
    ErrorKind.INVALID_SCENE_NAME: 404,
    ErrorKind.REMOTE_ERROR: 502,
    ErrorKind.TRANSPORT_ERROR: 502,
}


class ConnectBody(BaseModel):
    address: Optional[str] = None
    password: Optional[str] = None


class TransformBody(BaseModel):
    x: float
    y: float


def error_body(err: OBSError) -> dict:
    body = {"error": err.kind.value, "detail": str(err)}
    code = getattr(err, "code", None)
    if code is not None:
        body["code"] = code
    return body


# ──────────────────────────────────────────────────────────────────────────────
# WebSocket connection pool
# ──────────────────────────────────────────────────────────────────────────────

class WSConnectionPool:
    def __init__(self):
        self._connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)
        log.info(f"WS client connected. Total: {len(self._connections)}")

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)
        log.info(f"WS client disconnected. Total: {len(self._connections)}")

    async def broadcast(self, message: dict) -> None:
        if not self._connections:
            return
        data = json.dumps(message)
        dead = []
        for ws in self._connections:
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def count(self) -> int:
        return len(self._connections)


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

def create_app() -> FastAPI:
    settings = get_settings()
    ws_pool = WSConnectionPool()

    def obs() -> OBSSession:
        try:
            return get_obs_session()
        except RuntimeError:
            raise HTTPException(status_code=503, detail="OBS session not initialized")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"obs-session API starting on {settings.api.host}:{settings.api.port}")
        unsubscribe = None
        try:
            session = get_obs_session()
        except RuntimeError:
            session = None

        if session is not None:
            loop = asyncio.get_running_loop()

            def on_status(_old, _new) -> None:
                loop.create_task(ws_pool.broadcast({"event": "status", "data": session.snapshot().to_dict()}))

            unsubscribe = session.on_status(on_status)

        yield

        if unsubscribe is not None:
            unsubscribe()
        if session is not None:
            await session.close()
        log.info("obs-session API shutting down.")

    app = FastAPI(
        title="obs-session",
        description="OBS WebSocket session bridge",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OBSError)
    async def obs_error_handler(_request: Request, exc: OBSError):
        return JSONResponse(status_code=ERROR_STATUS_CODES.get(exc.kind, 502), content=error_body(exc))

    # ── REST auth dependency ──────────────────────────────────────────

    async def verify_api_key(authorization: Optional[str] = Header(None)):
        if settings.api.api_key:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing Bearer token")
            token = authorization.removeprefix("Bearer ").strip()
            if token != settings.api.api_key:
                raise HTTPException(status_code=403, detail="Invalid API key")

    auth = Depends(verify_api_key)

    # ─────────────────────────────────────────────────────────────────
    # Health & status
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        session = obs()
        return {
            "status": "ok",
            "obs_status": session.status.value,
            "ws_clients": ws_pool.count(),
            "version": __version__,
        }

    @app.get("/status", tags=["System"], dependencies=[auth])
    async def status():
        return obs().snapshot().to_dict()

    # ─────────────────────────────────────────────────────────────────
    # OBS — Connection
    # ─────────────────────────────────────────────────────────────────

    @app.post("/obs/connect", tags=["OBS"], dependencies=[auth])
    async def connect(body: Optional[ConnectBody] = None):
        session = obs()
        body = body or ConnectBody()
        await session.connect(body.address, body.password)
        return session.snapshot().to_dict()

    @app.post("/obs/disconnect", tags=["OBS"], dependencies=[auth])
    async def disconnect():
        session = obs()
        await session.close()
        return session.snapshot().to_dict()

    # ─────────────────────────────────────────────────────────────────
    # OBS — Commands
    # ─────────────────────────────────────────────────────────────────

    @app.get("/obs/video-settings", tags=["OBS"], dependencies=[auth])
    async def video_settings():
        return await obs().get_video_settings()

    @app.get("/obs/scene-items", tags=["OBS"], dependencies=[auth])
    async def scene_items():
        session = obs()
        return {"scene": session.scene_name, "items": await session.get_scene_items()}

    @app.get("/obs/source/{source_name}/screenshot", tags=["OBS"], dependencies=[auth])
    async def screenshot(source_name: str):
        return await obs().get_source_screenshot(source_name)

    @app.post("/obs/scene-item/{scene_item_id}/transform", tags=["OBS"], dependencies=[auth])
    async def transform(scene_item_id: int, body: TransformBody):
        await obs().set_scene_item_transform(scene_item_id, body.x, body.y)
        return {"scene_item_id": scene_item_id, "x": body.x, "y": body.y, "status": "ok"}

    # ─────────────────────────────────────────────────────────────────
    # WebSocket status feed
    # ─────────────────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: Optional[str] = Query(None),
    ):
        if settings.api.api_key:
            if not token or token != settings.api.api_key:
                await websocket.close(code=4001, reason="Unauthorized")
                return

        await ws_pool.connect(websocket)
        try:
            session = get_obs_session()
        except RuntimeError:
            session = None
        await websocket.send_text(json.dumps({
            "event": "status",
            "data": session.snapshot().to_dict() if session else None,
        }))

        try:
            while True:
                # Inbound messages are ignored; the feed is one-way.
                await websocket.receive_text()
        except WebSocketDisconnect:
            ws_pool.disconnect(websocket)

    return app
