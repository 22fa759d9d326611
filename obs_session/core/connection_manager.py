"""
core/connection_manager.py — Global OBS session singleton for dependency injection.
"""

from __future__ import annotations

from typing import Optional

from .handshake import EVENT_SUBSCRIPTION_ALL
from .session import OBSSession, TransportFactory
from .transport import WebSocketTransport

_obs_session: Optional[OBSSession] = None


def init_obs_session(
    host: str,
    port: int,
    password: str,
    scene_name: str = "",
    event_subscriptions: int = EVENT_SUBSCRIPTION_ALL,
    transport_factory: TransportFactory = WebSocketTransport,
) -> OBSSession:
    global _obs_session
    _obs_session = OBSSession(
        host=host,
        port=port,
        password=password,
        scene_name=scene_name,
        event_subscriptions=event_subscriptions,
        transport_factory=transport_factory,
    )
    return _obs_session


def get_obs_session() -> OBSSession:
    if _obs_session is None:
        raise RuntimeError("OBS session not initialized. Call init_obs_session() first.")
    return _obs_session


def reset_obs_session() -> None:
    global _obs_session
    _obs_session = None
