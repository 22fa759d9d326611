"""
core/session.py — OBS WebSocket v5 session: lifecycle, handshake gating, commands.

One OBSSession owns at most one live transport. connect() always tears the
previous one down first; close() and an unsolicited remote close both fail
every in-flight request with OBSDisconnectedError before the status settles
on Closed. Commands are only accepted while the status is Open.

Example:
    session = OBSSession(host="localhost", port=4455, password="secret", scene_name="Main")
    session.on_ready(lambda: print("OBS ready"))
    await session.connect()
    settings = await session.get_video_settings()
    await session.set_scene_item_transform(5, 100, 200)
    await session.close()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .dispatcher import RequestDispatcher
from .errors import (
    OBSAuthenticationError,
    OBSDisconnectedError,
    OBSError,
    OBSInvalidSceneNameError,
    OBSRemoteError,
    OBSTransportError,
    classify,
    is_missing_source,
)
from .handshake import EVENT_SUBSCRIPTION_ALL, HandshakeCoordinator, OpCode, parse_frame
from .status import ConnectionStatus, StatusListener, StatusMachine
from .transport import Transport, WebSocketTransport

log = logging.getLogger(__name__)

ReadyCallback = Callable[[], Any]
EventCallback = Callable[[dict], Any]
TransportFactory = Callable[[], Transport]


# ── Link to OBS: either nothing, or one live transport ────────────────

@dataclass(frozen=True)
class NoSession:
    pass


@dataclass
class ActiveSession:
    transport: Transport
    reader: Optional[asyncio.Task] = None


Link = Union[NoSession, ActiveSession]


@dataclass(frozen=True)
class SessionSnapshot:
    status: ConnectionStatus
    last_error_message: str
    invalid_scene_name: bool
    pending_requests: int

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_error_message": self.last_error_message,
            "invalid_scene_name": self.invalid_scene_name,
            "pending_requests": self.pending_requests,
        }


def build_url(address: str) -> str:
    if address.startswith(("ws://", "wss://")):
        return address
    return f"ws://{address}"


class OBSSession:
    def __init__(
        self,
        host: str = "localhost",
        port: int = 4455,
        password: str = "",
        scene_name: str = "",
        event_subscriptions: int = EVENT_SUBSCRIPTION_ALL,
        transport_factory: TransportFactory = WebSocketTransport,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.scene_name = scene_name
        self.transport_factory = transport_factory

        self._state = StatusMachine()
        self._link: Link = NoSession()
        self._closing: Optional[asyncio.Event] = None
        self._handshake = HandshakeCoordinator(event_subscriptions)
        self._dispatcher = RequestDispatcher()
        self._ready_callback: Optional[ReadyCallback] = None
        self._event_listeners: dict[str, list[EventCallback]] = defaultdict(list)
        self._last_error_message = ""
        self._invalid_scene_name = False

    # ── Observable state (read-only from outside) ─────────────────────

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def last_error_message(self) -> str:
        return self._last_error_message

    @property
    def invalid_scene_name(self) -> bool:
        return self._invalid_scene_name

    def is_open(self) -> bool:
        return self._state.status is ConnectionStatus.OPEN

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self._state.status,
            last_error_message=self._last_error_message,
            invalid_scene_name=self._invalid_scene_name,
            pending_requests=self._dispatcher.pending_count,
        )

    def on_status(self, listener: StatusListener) -> Callable[[], None]:
        """Listener receives (old, new) on every status change. Returns an unsubscribe callable."""
        return self._state.subscribe(listener)

    def on_ready(self, callback: Optional[ReadyCallback]) -> None:
        """
        Register the callback fired once the next successful connect() completes its handshake.
        Only one slot: registering again replaces the previous callback.
        A connect() that fails hands the callback back, so it fires on the next successful attempt.
        """
        self._ready_callback = callback

    def on(self, event_type: str, callback: EventCallback) -> None:
        """Subscribe to an OBS event (e.g. "CurrentProgramSceneChanged"). Callback receives eventData."""
        self._event_listeners[event_type].append(callback)

    # ── Connection ────────────────────────────────────────────────────

    async def connect(self, address: Optional[str] = None, password: Optional[str] = None) -> None:
        """
        Open a fresh session and wait for OBS to identify us.

        Any previous session is closed first. Raises OBSAuthenticationError
        (status → AuthenticationError) when OBS rejects the password, and
        OBSTransportError (status → Closed) for every other failure.
        """
        while not isinstance(self._link, NoSession) or self._closing is not None:
            await self.close()

        url = build_url(address or f"{self.host}:{self.port}")
        secret = self.password if password is None else password
        ready, self._ready_callback = self._ready_callback, None

        log.info(f"Connecting to OBS at {url}")
        self._state.transition(ConnectionStatus.CONNECTING)
        link = ActiveSession(transport=self.transport_factory())
        self._link = link

        try:
            await link.transport.connect(url)
            await self._handshake.run(link.transport, secret)
        except asyncio.CancelledError:
            self._restore_ready(ready)
            await self._abandon(link, ConnectionStatus.CLOSED, OBSDisconnectedError())
            raise
        except Exception as e:
            err = classify(e)
            self._restore_ready(ready)
            if isinstance(err, OBSAuthenticationError):
                log.warning("OBS authentication error")
                owned = await self._abandon(link, ConnectionStatus.AUTHENTICATION_ERROR, err, str(err))
            else:
                log.warning(f"OBS connection failed: {err}")
                owned = await self._abandon(link, ConnectionStatus.CLOSED, err, f"OBS Connection Error: {err}")
            if not owned:
                raise OBSDisconnectedError("OBS session was closed during the handshake.") from e
            if err is e:
                raise
            raise err from e

        if self._link is not link:
            await self._close_transport(link.transport)
            raise OBSDisconnectedError("OBS session was closed during the handshake.")

        self._last_error_message = ""
        link.reader = asyncio.create_task(self._read_loop(link), name="obs-session-reader")
        self._state.transition(ConnectionStatus.OPEN)
        log.info(f"Connected to OBS at {url}")

        if ready is not None:
            try:
                result = ready()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(f"Ready callback error: {e}")

    def _restore_ready(self, ready: Optional[ReadyCallback]) -> None:
        # A failed attempt hands the callback back for the next connect().
        if self._ready_callback is None:
            self._ready_callback = ready

    async def close(self) -> None:
        """Tear down the current session. No-op when there is none."""
        link = self._link
        if isinstance(link, ActiveSession):
            log.info("Closing OBS session")
            await self._teardown(
                link,
                ConnectionStatus.CLOSED,
                OBSDisconnectedError("OBS session closed."),
                interim=ConnectionStatus.CLOSING,
            )
        elif self._closing is not None:
            await self._closing.wait()

    async def _abandon(
        self,
        link: ActiveSession,
        status: ConnectionStatus,
        error: OBSError,
        message: str = "",
    ) -> bool:
        """Drop a transport whose connect/handshake failed. False if someone else already owns the teardown."""
        if self._link is not link:
            await self._close_transport(link.transport)
            return False
        if message:
            self._last_error_message = message
        await self._teardown(link, status, error)
        return True

    async def _teardown(
        self,
        link: ActiveSession,
        final: ConnectionStatus,
        error: OBSError,
        interim: Optional[ConnectionStatus] = None,
    ) -> None:
        """
        The single exit path for a transport: unlink it, fail in-flight
        requests, stop the reader, disconnect, then settle the status.
        """
        self._link = NoSession()
        done = asyncio.Event()
        self._closing = done
        try:
            if interim is not None:
                self._state.transition(interim)
            self._dispatcher.reject_all(error)

            reader = link.reader
            own_task = reader is asyncio.current_task()
            if reader is not None and not own_task:
                reader.cancel()
            await self._close_transport(link.transport)
            if reader is not None and not own_task:
                await asyncio.gather(reader, return_exceptions=True)

            self._state.transition(final)
        finally:
            self._closing = None
            done.set()

    @staticmethod
    async def _close_transport(transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            log.warning(f"Error while disconnecting from OBS: {e}")

    # ── Inbound frames ────────────────────────────────────────────────

    async def _read_loop(self, link: ActiveSession) -> None:
        transport = link.transport
        while True:
            try:
                frame = await transport.receive()
            except OBSError as e:
                log.warning(f"OBS receive failed: {e}")
                frame = None
            if frame is None:
                break
            self._process_frame(frame)

        if self._link is link:
            code, reason = transport.close_code, transport.close_reason
            log.warning(f"OBS WebSocket closed by remote ({code}: {reason or 'no reason'})")
            await self._teardown(
                link,
                ConnectionStatus.CLOSED,
                OBSDisconnectedError(f"OBS closed the connection ({code})."),
            )

    def _process_frame(self, frame: dict) -> None:
        op, d = parse_frame(frame)
        if op == OpCode.REQUEST_RESPONSE:
            self._dispatcher.resolve(d)
        elif op == OpCode.EVENT:
            self._emit_event(d.get("eventType", ""), d.get("eventData") or {})
        elif op == OpCode.IDENTIFIED:
            log.debug("OBS re-identified")
        else:
            log.debug(f"Unhandled OBS op {op}")

    def _emit_event(self, event_type: str, data: dict) -> None:
        log.debug(f"OBS event: {event_type}")
        for cb in self._event_listeners.get(event_type, []):
            try:
                result = cb(data)
                if inspect.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception as e:
                log.error(f"Event listener error ({event_type}): {e}")

    # ── Core request helper ───────────────────────────────────────────

    async def call(
        self,
        request_type: str,
        request_data: Optional[dict[str, Any]] = None,
        unwrap: Optional[str] = None,
    ) -> Any:
        link = self._link
        if not self.is_open() or not isinstance(link, ActiveSession):
            raise OBSDisconnectedError()
        try:
            return await self._dispatcher.call(link.transport, request_type, request_data, unwrap)
        except OBSTransportError as e:
            if self._link is not link:
                raise OBSDisconnectedError() from e
            raise

    # ── Commands ──────────────────────────────────────────────────────

    async def get_video_settings(self) -> dict:
        result = await self.call("GetVideoSettings")
        log.debug(f"getVideoSettings: {result}")
        return result

    async def get_scene_items(self, scene_name: Optional[str] = None) -> list[dict]:
        """
        List the items of the configured scene.

        A "No source" failure from OBS means the scene name is wrong: the
        invalid_scene_name flag is raised and OBSInvalidSceneNameError is
        thrown. Other remote errors propagate untouched.
        """
        name = scene_name or self.scene_name
        try:
            items = await self.call("GetSceneItemList", {"sceneName": name}, unwrap="sceneItems")
        except OBSRemoteError as e:
            if is_missing_source(e):
                log.warning(f"Invalid OBS scene name: {name!r}")
                self._invalid_scene_name = True
                raise OBSInvalidSceneNameError.from_remote(e) from e
            raise
        self._invalid_scene_name = False
        return items if items is not None else []

    async def get_source_screenshot(self, source_name: str) -> dict:
        """Screenshot of a source as PNG. Returned untouched (imageData is a data: URI)."""
        result = await self.call(
            "GetSourceScreenshot",
            {"imageFormat": "png", "sourceName": source_name},
        )
        log.debug(f"getSourceScreenshot: {source_name}")
        return result

    async def set_scene_item_transform(self, scene_item_id: int, position_x: float, position_y: float) -> dict:
        result = await self.call(
            "SetSceneItemTransform",
            {
                "sceneName": self.scene_name,
                "sceneItemId": int(scene_item_id),
                "sceneItemTransform": {"positionX": position_x, "positionY": position_y},
            },
        )
        log.debug(f"setSceneItemTransform: item {scene_item_id} → ({position_x}, {position_y})")
        return result
