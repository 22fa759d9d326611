"""
core/transport.py — Duplex JSON frame channel to OBS.

The session core only talks to the Transport interface below. The
production implementation runs on the `websockets` asyncio client and
speaks the `obsws.json` subprotocol; tests swap in a scripted fake.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import OBSTransportError, classify

log = logging.getLogger(__name__)

Frame = dict[str, Any]

OBS_SUBPROTOCOL = "obsws.json"


class Transport(ABC):
    """One physical connection. Not reusable once closed."""

    @abstractmethod
    async def connect(self, url: str) -> None:
        """Open the connection. Raises OBSTransportError on failure."""

    @abstractmethod
    async def send(self, frame: Frame) -> None:
        ...

    @abstractmethod
    async def receive(self) -> Optional[Frame]:
        """Next parsed frame, or None once the connection has closed."""

    @abstractmethod
    async def close(self) -> None:
        """Disconnect. Safe to call more than once, and before connect() has finished."""

    @property
    @abstractmethod
    def close_code(self) -> Optional[int]:
        ...

    @property
    @abstractmethod
    def close_reason(self) -> str:
        ...


class WebSocketTransport(Transport):
    def __init__(self, open_timeout: float = 10.0, close_timeout: float = 5.0) -> None:
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self._ws: Optional[ClientConnection] = None
        self._closed = False

    async def connect(self, url: str) -> None:
        if self._closed:
            raise OBSTransportError("WebSocket was closed before it opened")
        try:
            ws = await connect(
                url,
                subprotocols=[OBS_SUBPROTOCOL],
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise classify(e) from e
        if self._closed:
            # close() ran while the opening handshake was in flight.
            await ws.close()
            raise OBSTransportError("WebSocket was closed while opening")
        self._ws = ws
        log.debug(f"WebSocket open: {url}")

    async def send(self, frame: Frame) -> None:
        if self._ws is None:
            raise OBSTransportError("WebSocket is not connected")
        try:
            await self._ws.send(json.dumps(frame))
        except (OSError, WebSocketException) as e:
            raise classify(e) from e

    async def receive(self) -> Optional[Frame]:
        if self._ws is None:
            return None
        try:
            raw = await self._ws.recv()
        except ConnectionClosed:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise classify(e) from e

    async def close(self) -> None:
        self._closed = True
        if self._ws is not None:
            await self._ws.close()

    @property
    def close_code(self) -> Optional[int]:
        return self._ws.close_code if self._ws is not None else None

    @property
    def close_reason(self) -> str:
        if self._ws is None:
            return ""
        return self._ws.close_reason or ""
