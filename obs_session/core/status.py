"""
core/status.py — Connection status and the session state machine.

The status value lives here and only here. OBSSession drives it through
transition(); everyone else reads `status` or subscribes for changes.

    Closed ──► Connecting ──► Open ──► Closing ──► Closed
                  │  │          │                    ▲
                  │  └──────────┴────────────────────┘  (failure / remote close)
                  └──► AuthenticationError ──► Connecting
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

log = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    AUTHENTICATION_ERROR = "authentication_error"


StatusListener = Callable[[ConnectionStatus, ConnectionStatus], None]

_LEGAL: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.CLOSED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({
        ConnectionStatus.OPEN,
        ConnectionStatus.AUTHENTICATION_ERROR,
        ConnectionStatus.CLOSING,
        ConnectionStatus.CLOSED,
    }),
    ConnectionStatus.OPEN: frozenset({ConnectionStatus.CLOSING, ConnectionStatus.CLOSED}),
    ConnectionStatus.CLOSING: frozenset({ConnectionStatus.CLOSED}),
    ConnectionStatus.AUTHENTICATION_ERROR: frozenset({
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CLOSED,
    }),
}


class IllegalTransitionError(RuntimeError):
    def __init__(self, current: ConnectionStatus, target: ConnectionStatus) -> None:
        super().__init__(f"Illegal status transition {current.value} → {target.value}")
        self.current = current
        self.target = target


class StatusMachine:
    def __init__(self) -> None:
        self._status = ConnectionStatus.CLOSED
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def can_transition(self, target: ConnectionStatus) -> bool:
        return target in _LEGAL[self._status]

    def transition(self, target: ConnectionStatus) -> None:
        """Move to `target`, notifying listeners. Raises on an illegal edge."""
        current = self._status
        if target not in _LEGAL[current]:
            raise IllegalTransitionError(current, target)
        self._status = target
        log.debug(f"OBS status {current.value} → {target.value}")
        for listener in list(self._listeners):
            try:
                listener(current, target)
            except Exception as e:
                log.error(f"Status listener error: {e}")

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
