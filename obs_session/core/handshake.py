"""
core/handshake.py — Hello → Identify → Identified.

OBS opens every session with a Hello (op 0). If it carries an
`authentication` block the client must answer with

    secret = base64(sha256(password + salt))
    auth   = base64(sha256(secret + challenge))

inside Identify (op 1). OBS then either sends Identified (op 2) or closes
the socket; close code 4009 means the password was wrong.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from enum import IntEnum
from typing import Any, Optional

from .errors import (
    AUTHENTICATION_FAILED_CLOSE_CODE,
    AUTHENTICATION_FAILED_MESSAGE,
    OBSAuthenticationError,
    OBSTransportError,
)
from .transport import Frame, Transport

log = logging.getLogger(__name__)

RPC_VERSION = 1

# EventSubscription.All — every non high-volume event category.
EVENT_SUBSCRIPTION_ALL = 2047


class OpCode(IntEnum):
    HELLO = 0
    IDENTIFY = 1
    IDENTIFIED = 2
    REIDENTIFY = 3
    EVENT = 5
    REQUEST = 6
    REQUEST_RESPONSE = 7
    REQUEST_BATCH = 8
    REQUEST_BATCH_RESPONSE = 9


def build_auth_string(password: str, salt: str, challenge: str) -> str:
    secret = base64.b64encode(hashlib.sha256((password + salt).encode()).digest()).decode()
    return base64.b64encode(hashlib.sha256((secret + challenge).encode()).digest()).decode()


class HandshakeCoordinator:
    def __init__(self, event_subscriptions: int = EVENT_SUBSCRIPTION_ALL) -> None:
        self.event_subscriptions = event_subscriptions

    async def run(self, transport: Transport, password: str = "") -> dict[str, Any]:
        """
        Drive the handshake on an already-open transport.

        Returns the Identified payload. Raises OBSAuthenticationError if OBS
        rejects the password, OBSTransportError for any other way the
        connection ends before Identified.
        """
        hello = await self._expect(transport, OpCode.HELLO)
        log.debug(f"OBS hello: obs-websocket {hello.get('obsWebSocketVersion', '?')}, rpc {hello.get('rpcVersion', '?')}")

        identify: dict[str, Any] = {
            "rpcVersion": RPC_VERSION,
            "eventSubscriptions": self.event_subscriptions,
        }
        auth = hello.get("authentication")
        if auth:
            identify["authentication"] = build_auth_string(password, auth["salt"], auth["challenge"])
        await transport.send({"op": int(OpCode.IDENTIFY), "d": identify})

        identified = await self._expect(transport, OpCode.IDENTIFIED)
        log.info(f"OBS identified (rpc {identified.get('negotiatedRpcVersion', RPC_VERSION)})")
        return identified

    async def _expect(self, transport: Transport, op: OpCode) -> dict[str, Any]:
        while True:
            frame = await transport.receive()
            if frame is None:
                raise self._closed_error(transport, op)
            if frame.get("op") == op:
                return frame.get("d") or {}
            log.debug(f"Ignoring op {frame.get('op')} while waiting for {op.name}")

    @staticmethod
    def _closed_error(transport: Transport, waiting_for: OpCode) -> Exception:
        code: Optional[int] = transport.close_code
        reason = transport.close_reason
        if code == AUTHENTICATION_FAILED_CLOSE_CODE:
            return OBSAuthenticationError(AUTHENTICATION_FAILED_MESSAGE)
        return OBSTransportError(
            f"Connection closed while waiting for {waiting_for.name.title()} ({code}: {reason or 'no reason'})",
            close_code=code,
            close_reason=reason,
        )


def parse_frame(frame: Frame) -> tuple[Optional[int], dict[str, Any]]:
    return frame.get("op"), frame.get("d") or {}
