"""core — OBS WebSocket session management."""
from .errors import (
    ErrorKind,
    OBSAuthenticationError,
    OBSDisconnectedError,
    OBSError,
    OBSInvalidSceneNameError,
    OBSRemoteError,
    OBSTransportError,
    classify,
)
from .status import ConnectionStatus, IllegalTransitionError
from .transport import Transport, WebSocketTransport
from .session import OBSSession, SessionSnapshot
from .connection_manager import get_obs_session, init_obs_session, reset_obs_session

__all__ = [
    "ConnectionStatus",
    "ErrorKind",
    "IllegalTransitionError",
    "OBSAuthenticationError",
    "OBSDisconnectedError",
    "OBSError",
    "OBSInvalidSceneNameError",
    "OBSRemoteError",
    "OBSSession",
    "OBSTransportError",
    "SessionSnapshot",
    "Transport",
    "WebSocketTransport",
    "classify",
    "get_obs_session",
    "init_obs_session",
    "reset_obs_session",
]
