"""
Shared fixtures: a scripted in-memory OBS server behind the Transport interface.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from obs_session.core.errors import OBSTransportError
from obs_session.core.handshake import build_auth_string
from obs_session.core.session import OBSSession
from obs_session.core.transport import Frame, Transport

SALT = "lM1GncleQOaCu9lT1yeUZhFYnqhsLLP1G5lAGo3ixaI="
CHALLENGE = "+IxH4CnCiqpX1rM9scsNynZzbOe4KhDeYcTNS3PDaeY="


@dataclass
class Failure:
    code: int
    comment: str


class FakeOBS(Transport):
    """One fake socket. Answers Identify and Requests according to its factory's script."""

    def __init__(self, server: "FakeOBSServer") -> None:
        self.server = server
        self.url: Optional[str] = None
        self.connected = False
        self.closed = False
        self.sent: list[Frame] = []
        self.requests: list[dict] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._eof = False
        self.gate: Optional[asyncio.Event] = None
        self._close_code: Optional[int] = None
        self._close_reason = ""

    @property
    def live(self) -> bool:
        return self.connected and not self.closed

    async def connect(self, url: str) -> None:
        self.url = url
        if self.gate is not None:
            await self.gate.wait()
        if self.server.fail_connect:
            raise OBSTransportError(f"WebSocket connection failed: [Errno 111] Connect call failed ({url})")
        if self.closed:
            raise OBSTransportError("WebSocket was closed while opening")
        self.connected = True
        self.server.track_live()
        hello: dict[str, Any] = {"obsWebSocketVersion": "5.1.0", "rpcVersion": 1}
        if self.server.password is not None:
            hello["authentication"] = {"salt": SALT, "challenge": CHALLENGE}
        self.push({"op": 0, "d": hello})

    async def send(self, frame: Frame) -> None:
        if self.closed:
            raise OBSTransportError("WebSocket is closed")
        self.sent.append(frame)
        op, d = frame["op"], frame["d"]
        if op == 1:
            self._identify(d)
        elif op == 6:
            self.requests.append(d)
            if not self.server.hold:
                self.respond(d["requestId"])

    def _identify(self, d: dict) -> None:
        password = self.server.password
        if password is not None and d.get("authentication") != build_auth_string(password, SALT, CHALLENGE):
            self.remote_close(4009, "Authentication failed.")
            return
        if self.server.silent_identify:
            return
        self.push({"op": 2, "d": {"negotiatedRpcVersion": 1}})

    def respond(self, request_id: str, failure: Optional[Failure] = None, data: Optional[dict] = None) -> None:
        request = next(r for r in self.requests if r["requestId"] == request_id)
        request_type = request["requestType"]
        scripted = self.server.responses.get(request_type, {})
        if failure is None and isinstance(scripted, Failure):
            failure = scripted
        if failure is not None:
            status = {"result": False, "code": failure.code, "comment": failure.comment}
            response = {"requestType": request_type, "requestId": request_id, "requestStatus": status}
        else:
            response = {
                "requestType": request_type,
                "requestId": request_id,
                "requestStatus": {"result": True, "code": 100},
                "responseData": data if data is not None else scripted,
            }
        self.push({"op": 7, "d": response})

    def push(self, frame: Optional[Frame]) -> None:
        self._queue.put_nowait(frame)

    def emit_event(self, event_type: str, data: dict) -> None:
        self.push({"op": 5, "d": {"eventType": event_type, "eventIntent": 1, "eventData": data}})

    def remote_close(self, code: int = 1001, reason: str = "") -> None:
        self._close_code = code
        self._close_reason = reason
        self.closed = True
        self.push(None)

    async def receive(self) -> Optional[Frame]:
        if self._eof:
            return None
        frame = await self._queue.get()
        if frame is None:
            self._eof = True
        return frame

    async def close(self) -> None:
        if not self.connected and not self.server.honour_early_close:
            return
        if not self.closed:
            self.closed = True
            if self._close_code is None:
                self._close_code = 1000
            self.push(None)

    @property
    def close_code(self) -> Optional[int]:
        return self._close_code

    @property
    def close_reason(self) -> str:
        return self._close_reason


class FakeOBSServer:
    """Transport factory; remembers every socket it handed out."""

    def __init__(self) -> None:
        self.password: Optional[str] = None
        self.fail_connect = False
        self.silent_identify = False
        self.hold = False
        # Holds the next socket in connect() until set.
        self.connect_gate: Optional[asyncio.Event] = None
        # False models a socket whose close() before open does nothing.
        self.honour_early_close = True
        self.responses: dict[str, Any] = {}
        self.transports: list[FakeOBS] = []
        self.max_live = 0

    def __call__(self) -> FakeOBS:
        transport = FakeOBS(self)
        transport.gate, self.connect_gate = self.connect_gate, None
        self.transports.append(transport)
        return transport

    @property
    def live(self) -> list[FakeOBS]:
        return [t for t in self.transports if t.live]

    @property
    def current(self) -> FakeOBS:
        return self.transports[-1]

    def track_live(self) -> None:
        self.max_live = max(self.max_live, len(self.live))


async def wait_for_transports(server: FakeOBSServer, count: int) -> None:
    for _ in range(1000):
        if len(server.transports) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} sockets, saw {len(server.transports)}")


async def wait_for_requests(transport: FakeOBS, count: int) -> None:
    for _ in range(1000):
        if len(transport.requests) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} requests, saw {len(transport.requests)}")


VIDEO_SETTINGS = {
    "baseWidth": 1920,
    "baseHeight": 1080,
    "outputWidth": 1280,
    "outputHeight": 720,
    "fpsNumerator": 60,
    "fpsDenominator": 1,
}

SCENE_ITEMS = [
    {"sceneItemId": 5, "sourceName": "Camera", "sceneItemEnabled": True,
     "sceneItemTransform": {"positionX": 0.0, "positionY": 0.0}},
    {"sceneItemId": 7, "sourceName": "Overlay", "sceneItemEnabled": False,
     "sceneItemTransform": {"positionX": 640.0, "positionY": 360.0}},
]


@pytest.fixture
def obs_server() -> FakeOBSServer:
    server = FakeOBSServer()
    server.responses = {
        "GetVideoSettings": dict(VIDEO_SETTINGS),
        "GetSceneItemList": {"sceneItems": [dict(i) for i in SCENE_ITEMS]},
        "GetSourceScreenshot": {"imageData": "data:image/png;base64,iVBORw0KGgo="},
        "SetSceneItemTransform": {},
    }
    return server


@pytest.fixture
def session(obs_server: FakeOBSServer) -> OBSSession:
    return OBSSession(
        host="obs.local",
        port=4455,
        password="",
        scene_name="Main",
        transport_factory=obs_server,
    )
