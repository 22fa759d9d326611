"""
core/errors.py — Error taxonomy for the OBS session core.

Every failure that leaves the core is one of five kinds:

  Disconnected            no live, open session to run the operation on
  AuthenticationRejected  OBS refused the password during the handshake
  InvalidSceneName        OBS says the configured scene/source does not exist
  RemoteError             any other failure reported by OBS for a request
  TransportError          socket-level connect/send/receive failure

classify() folds raw exceptions (websockets, OSError, bad JSON) into the
same taxonomy so callers only ever need to catch OBSError.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Optional

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI, WebSocketException

# OBS WebSocket v5 close code sent when the Identify auth string is wrong.
AUTHENTICATION_FAILED_CLOSE_CODE = 4009
AUTHENTICATION_FAILED_MESSAGE = "Authentication failed."

# Fragment OBS puts in the comment of a ResourceNotFound for scenes/sources.
MISSING_SOURCE_FRAGMENT = "No source"


class ErrorKind(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATION_REJECTED = "authentication_rejected"
    INVALID_SCENE_NAME = "invalid_scene_name"
    REMOTE_ERROR = "remote_error"
    TRANSPORT_ERROR = "transport_error"


class OBSError(Exception):
    """Base error for everything raised by the session core."""

    kind: ErrorKind = ErrorKind.TRANSPORT_ERROR


class OBSDisconnectedError(OBSError):
    kind = ErrorKind.DISCONNECTED

    def __init__(self, message: str = "OBS Disconnected.") -> None:
        super().__init__(message)


class OBSAuthenticationError(OBSError):
    kind = ErrorKind.AUTHENTICATION_REJECTED

    def __init__(self, message: str = AUTHENTICATION_FAILED_MESSAGE) -> None:
        super().__init__(message)


class OBSRemoteError(OBSError):
    """A request reached OBS and OBS answered with a failed requestStatus."""

    kind = ErrorKind.REMOTE_ERROR

    def __init__(self, code: int, comment: str = "", request_type: str = "") -> None:
        self.code = code
        self.comment = comment
        self.request_type = request_type
        super().__init__(comment or f"{request_type or 'Request'} failed with code {code}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, comment={self.comment!r}, request_type={self.request_type!r})"


class OBSInvalidSceneNameError(OBSRemoteError):
    kind = ErrorKind.INVALID_SCENE_NAME

    @classmethod
    def from_remote(cls, err: OBSRemoteError) -> "OBSInvalidSceneNameError":
        return cls(err.code, err.comment, err.request_type)


class OBSTransportError(OBSError):
    kind = ErrorKind.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        close_code: Optional[int] = None,
        close_reason: str = "",
    ) -> None:
        super().__init__(message)
        self.close_code = close_code
        self.close_reason = close_reason


def is_missing_source(err: OBSRemoteError) -> bool:
    return MISSING_SOURCE_FRAGMENT in (err.comment or "")


def classify(exc: BaseException) -> OBSError:
    """
    Map a raw failure onto the OBSError taxonomy.

    Taxonomy instances are returned as-is. Anything else is wrapped, keeping
    the original text in the message; the caller is expected to chain it
    with ``raise classify(e) from e``.
    """
    if isinstance(exc, OBSError):
        return exc

    if isinstance(exc, ConnectionClosed):
        frame = exc.rcvd
        code = frame.code if frame is not None else None
        reason = frame.reason if frame is not None else ""
        if code == AUTHENTICATION_FAILED_CLOSE_CODE:
            return OBSAuthenticationError(reason or AUTHENTICATION_FAILED_MESSAGE)
        return OBSTransportError(f"Connection closed: {exc}", close_code=code, close_reason=reason)

    if isinstance(exc, (InvalidHandshake, InvalidURI)):
        return OBSTransportError(f"WebSocket handshake failed: {exc}")

    if isinstance(exc, json.JSONDecodeError):
        return OBSTransportError(f"Malformed frame from OBS: {exc}")

    if isinstance(exc, (OSError, WebSocketException)):
        return OBSTransportError(f"WebSocket connection failed: {exc}")

    if isinstance(exc, (TimeoutError, ValueError)):
        return OBSTransportError(str(exc) or type(exc).__name__)

    return OBSTransportError(f"{type(exc).__name__}: {exc}")
