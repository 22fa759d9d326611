"""
core/dispatcher.py — Request/response correlation over one transport.

Each call gets a fresh requestId and a future. Responses may come back in
any order; the reader hands every RequestResponse frame to resolve(), which
matches it by id. When the session goes away reject_all() fails every
outstanding future so no caller is left waiting.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import OBSDisconnectedError, OBSError, OBSRemoteError
from .handshake import OpCode
from .transport import Transport

log = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    request_id: str
    request_type: str
    unwrap: Optional[str] = None  # responseData field handed back instead of the whole dict
    future: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class RequestDispatcher:
    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    async def call(
        self,
        transport: Transport,
        request_type: str,
        request_data: Optional[dict[str, Any]] = None,
        unwrap: Optional[str] = None,
    ) -> Any:
        pending = PendingRequest(request_id=str(uuid.uuid4()), request_type=request_type, unwrap=unwrap)
        self._pending[pending.request_id] = pending

        payload: dict[str, Any] = {"requestType": request_type, "requestId": pending.request_id}
        if request_data is not None:
            payload["requestData"] = request_data

        try:
            log.debug(f"→ {request_type} [{pending.request_id}]")
            await transport.send({"op": int(OpCode.REQUEST), "d": payload})
            return await pending.future
        finally:
            self._pending.pop(pending.request_id, None)
            if pending.future.done() and not pending.future.cancelled():
                # Mark it retrieved even when send() failed first.
                pending.future.exception()

    def resolve(self, response: dict[str, Any]) -> bool:
        """Settle the pending call matching a RequestResponse payload. False if nobody is waiting."""
        request_id = response.get("requestId", "")
        pending = self._pending.pop(request_id, None)
        if pending is None:
            log.debug(f"Dropping response for unknown request {request_id!r}")
            return False
        if pending.future.done():
            return False

        status = response.get("requestStatus") or {}
        log.debug(f"← {pending.request_type} [{request_id}] result={status.get('result')}")
        if not status.get("result", False):
            pending.future.set_exception(
                OBSRemoteError(
                    code=status.get("code", 0),
                    comment=status.get("comment", ""),
                    request_type=pending.request_type,
                )
            )
            return True

        data = response.get("responseData") or {}
        pending.future.set_result(data.get(pending.unwrap) if pending.unwrap else data)
        return True

    def reject_all(self, error: Optional[OBSError] = None) -> int:
        """Fail every outstanding call with its own OBSDisconnectedError. Returns how many were rejected."""
        message = str(error) if error is not None else str(OBSDisconnectedError())
        rejected = 0
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_exception(OBSDisconnectedError(message))
                rejected += 1
        self._pending.clear()
        if rejected:
            log.warning(f"Rejected {rejected} in-flight OBS request(s): {message}")
        return rejected
