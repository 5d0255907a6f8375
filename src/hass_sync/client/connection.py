"""Persistent websocket connection to the Home Assistant API.

One :class:`Connection` owns at most one socket at a time.  Each socket is
tracked by a :class:`SocketSession` carrying an epoch number; anything posted
for an epoch that is no longer current is dropped, so a pong for a ping from
a replaced socket never reaches the new one.

Everything here runs on a single asyncio loop: the registry, the entity store
and the catalog are mutated only from that loop and need no locking.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Type

import websockets

from hass_sync.errors import (
    AuthError,
    ConfigError,
    ConnectionClosedError,
    ProtocolError,
    TransportError,
)
from hass_sync.protocol import (
    AuthInvalid,
    AuthOk,
    AuthRequired,
    EventFrame,
    FrameParser,
    HandshakeFrame,
    ResultFrame,
    build_area_registry_list,
    build_auth,
    build_get_config,
    build_get_services,
    build_get_states,
    build_subscribe_events,
    encode_frame,
)
from hass_sync.utils.env import env_bool

from .actions import ActionInvoker
from .catalog import RemoteCatalog
from .config import ConnectionConfig
from .entity_store import EntityStore
from .events import (
    ClientEvent,
    ConnectionClosed,
    ConnectionErrored,
    ConnectionOpened,
    ConnectionReady,
    EventBus,
    MessageReceived,
)
from .frame_router import FrameHandlers, FrameRouter
from .pending_requests import PendingHandle, PendingRequestRegistry
from .scheduling import ScheduledTask


logger = logging.getLogger(__name__)


def _maybe_enable_debug_logger() -> bool:
    if not env_bool("HASS_SYNC_DEBUG", False):
        return False
    package_logger = logging.getLogger("hass_sync")
    has_local = any(getattr(h, "_hass_sync_local", False) for h in package_logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_hass_sync_local", True)
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False
    return True


_STATE_DEBUG = _maybe_enable_debug_logger()

_PARSER = FrameParser()


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    CLOSING = "closing"
    FAILED = "failed"


@dataclass(eq=False)
class SocketSession:
    epoch: int
    url: str
    websocket: Any = None
    outbox: "asyncio.Queue[Optional[str]]" = field(default_factory=asyncio.Queue)
    task: Optional[asyncio.Task] = None
    handshake_timer: Optional[asyncio.TimerHandle] = None
    intentional: bool = False
    retired: bool = False


BootstrapHook = Callable[[ResultFrame], None]


class Connection:
    """Authenticated, self-reconnecting client for the websocket API.

    ``connect`` validates the config and starts the socket task without
    blocking; progress is published on :attr:`events`.  An unintentional
    close schedules a reconnect; ``close()`` and ``auth_invalid`` do not.
    """

    def __init__(self, *, connector: Optional[Callable[..., Any]] = None) -> None:
        self._connector = connector or websockets.connect
        self._config: Optional[ConnectionConfig] = None
        self._state = ConnectionState.DISCONNECTED
        self._epoch = 0
        self._session: Optional[SocketSession] = None
        self._ha_version: Optional[str] = None
        self._auth_error: Optional[AuthError] = None

        self._bus = EventBus()
        self._store = EntityStore(emit=self._bus.emit)
        self._catalog = RemoteCatalog()
        self._registry = PendingRequestRegistry(transmit=self._transmit, is_ready=self._is_ready)
        self._router = FrameRouter(
            FrameHandlers(
                handshake=self._handle_handshake,
                result=self._handle_result,
                state_change=self._handle_state_changed,
                message=self._forward_message,
            )
        )
        self._actions = ActionInvoker(self.request)
        self._reconnect = ScheduledTask(self._reconnect_now, name="reconnect")
        self._reconnect_attempts = 0
        self._bootstrap_hooks: Dict[int, BootstrapHook] = {}
        self._ready_waiters: List[asyncio.Future] = []
        self._background: Set[asyncio.Task] = set()

    # --- Read-only accessors ---------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._is_ready()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def config(self) -> Optional[ConnectionConfig]:
        return self._config

    @property
    def ha_version(self) -> Optional[str]:
        return self._ha_version

    @property
    def events(self) -> EventBus:
        return self._bus

    @property
    def entities(self) -> EntityStore:
        return self._store

    @property
    def catalog(self) -> RemoteCatalog:
        return self._catalog

    @property
    def pending_count(self) -> int:
        return len(self._registry)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.pending

    def subscribe(self, event_type: Type[ClientEvent], listener: Callable[[Any], None]) -> Callable[[], None]:
        return self._bus.subscribe(event_type, listener)

    # --- Lifecycle -------------------------------------------------------------
    def connect(self, config: ConnectionConfig) -> None:
        """Validate ``config`` and open a new socket; must run inside the event loop.

        Raises :class:`ConfigError` without touching any socket when the
        config is incomplete.  An already-open socket is closed first as an
        intentional replacement.
        """

        try:
            config.validate()
        except ConfigError as exc:
            logger.error("connect aborted: %s", exc)
            self._bus.emit(ConnectionErrored(error=exc))
            raise

        loop = asyncio.get_running_loop()
        self._config = config
        self._auth_error = None
        self._registry.timeout_s = float(config.request_timeout_s)
        self._reconnect.cancel()
        self._reconnect_attempts = 0

        previous = self._session
        if previous is not None:
            previous.intentional = True
            self._retire(previous, reason="replaced by a new connect()")
            self._close_socket_soon(previous)
        self._open_session(loop)

    async def close(self) -> None:
        """Close the socket on purpose: no reconnect, pending requests rejected."""

        self._reconnect.cancel()
        session = self._session
        if session is None:
            if self._state is ConnectionState.FAILED:
                self._set_state(ConnectionState.DISCONNECTED)
            self._settle_ready_waiters(ConnectionClosedError("connection closed by client"))
            return
        session.intentional = True
        self._set_state(ConnectionState.CLOSING)
        await self._shutdown_socket(session)
        self._retire(session, reason="closed by client")
        # A replacing connect() keeps its waiters for the new socket; close() does not.
        self._settle_ready_waiters(ConnectionClosedError("connection closed by client"))

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Block until the handshake succeeds.

        Raises ``AuthError`` if the token is rejected and ``ConnectionClosedError``
        if ``close()`` runs first.
        """

        if self._state is ConnectionState.READY:
            return
        if self._state is ConnectionState.FAILED and self._auth_error is not None:
            raise self._auth_error
        waiter = asyncio.get_running_loop().create_future()
        self._ready_waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter, timeout)
        finally:
            if waiter in self._ready_waiters:
                self._ready_waiters.remove(waiter)

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Requests --------------------------------------------------------------
    def request(self, body: Mapping[str, Any], *, timeout_s: Optional[float] = None) -> PendingHandle:
        """Send ``body`` with a fresh id; await the handle for the ``ResultFrame``."""

        return self._registry.send(body, timeout_s=timeout_s)

    async def invoke_action(
        self,
        category: str,
        name: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        target: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        return await self._actions.invoke_action(category, name, payload, target=target)

    # --- Socket sessions -------------------------------------------------------
    def _open_session(self, loop: asyncio.AbstractEventLoop) -> None:
        assert self._config is not None
        self._epoch += 1
        session = SocketSession(epoch=self._epoch, url=self._config.websocket_url)
        self._session = session
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to %s (epoch %d)", session.url, session.epoch)
        session.task = loop.create_task(self._run_session(session), name=f"hass-sync-socket-{session.epoch}")

    async def _run_session(self, session: SocketSession) -> None:
        config = self._config
        assert config is not None
        reason = "socket closed"
        try:
            async with self._connector(
                session.url,
                open_timeout=config.handshake_timeout_s,
                ping_interval=config.ping_interval_s,
            ) as ws:
                if session.retired:
                    return
                session.websocket = ws
                self._on_socket_open(session)
                sender = asyncio.create_task(self._drain_outbox(session, ws))
                try:
                    async for raw in ws:
                        if session.retired:
                            break
                        self._ingest(session, raw)
                finally:
                    session.outbox.put_nowait(None)
                    await asyncio.gather(sender, return_exceptions=True)
        except (EOFError, ConnectionRefusedError) as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.info("Websocket unavailable (%s)", reason)
        except websockets.exceptions.InvalidHandshake as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.info("Websocket upgrade failed (%s)", reason)
        except websockets.exceptions.ConnectionClosed as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.info("Websocket closed abnormally (%s)", reason)
        except (OSError, asyncio.TimeoutError) as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.info("Websocket socket error (%s)", reason)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.exception("Websocket session %d failed", session.epoch)
        finally:
            session.websocket = None
            self._retire(session, reason="closed by client" if session.intentional else reason)

    def _on_socket_open(self, session: SocketSession) -> None:
        config = self._config
        self._set_state(ConnectionState.AUTHENTICATING)
        self._bus.emit(ConnectionOpened(epoch=session.epoch, url=session.url))
        if config is not None and config.handshake_timeout_s:
            loop = asyncio.get_running_loop()
            session.handshake_timer = loop.call_later(
                config.handshake_timeout_s, self._handshake_expired, session
            )

    async def _drain_outbox(self, session: SocketSession, ws: Any) -> None:
        while True:
            text = await session.outbox.get()
            if text is None:
                break
            try:
                await ws.send(text)
            except Exception:
                logger.debug("sender for epoch %d failed; stopping", session.epoch, exc_info=True)
                break
            if _STATE_DEBUG:
                logger.debug("epoch %d -> %s", session.epoch, text if '"auth"' not in text else "<auth>")

    def _ingest(self, session: SocketSession, raw: Any) -> None:
        try:
            frame = _PARSER.parse_json(raw)
        except ProtocolError as exc:
            logger.warning("Dropping malformed frame on epoch %d: %s", session.epoch, exc)
            return
        if _STATE_DEBUG:
            logger.debug("epoch %d <- %s", session.epoch, frame.type)
        try:
            self._router.dispatch(frame, reply=lambda payload: self._post(session, payload))
        except Exception:
            logger.exception("Dispatch of %s frame failed", frame.type)

    def _post(self, session: SocketSession, payload: Mapping[str, Any]) -> bool:
        if session.retired or session.epoch != self._epoch:
            logger.debug("dropping %s for stale epoch %d", payload.get("type"), session.epoch)
            return False
        session.outbox.put_nowait(encode_frame(payload))
        return True

    def _transmit(self, frame: Mapping[str, Any]) -> None:
        session = self._session
        if session is None or not self._post(session, frame):
            raise TransportError("no active socket")

    def _is_ready(self) -> bool:
        return self._state is ConnectionState.READY and self._session is not None

    def _retire(self, session: SocketSession, *, reason: str) -> None:
        """Tear down bookkeeping for ``session`` once; reconnect if it was accidental."""

        if session.retired:
            return
        session.retired = True
        if session.handshake_timer is not None:
            session.handshake_timer.cancel()
            session.handshake_timer = None
        session.outbox.put_nowait(None)
        if session is not self._session:
            return

        self._session = None
        failed = self._state is ConnectionState.FAILED
        self._bootstrap_hooks.clear()
        self._registry.reject_all(reason)
        if not failed:
            self._set_state(ConnectionState.DISCONNECTED)
        self._bus.emit(ConnectionClosed(epoch=session.epoch, intentional=session.intentional, reason=reason))
        if session.intentional:
            logger.info("Connection closed (epoch %d): %s", session.epoch, reason)
        elif failed:
            logger.info("Connection closed after authentication failure; not reconnecting")
        else:
            self._schedule_reconnect()

    async def _shutdown_socket(self, session: SocketSession) -> None:
        ws = session.websocket
        task = session.task
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("close of epoch %d failed", session.epoch, exc_info=True)
        elif task is not None and not task.done():
            task.cancel()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    def _close_socket_soon(self, session: SocketSession) -> None:
        task = asyncio.get_running_loop().create_task(self._shutdown_socket(session))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # --- Reconnect -------------------------------------------------------------
    def _schedule_reconnect(self) -> None:
        config = self._config
        if config is None:
            return
        cap = max(config.reconnect_max_delay_s, config.reconnect_delay_s)
        delay = config.reconnect_delay_s
        if config.reconnect_backoff > 1.0:
            # Stops growing once the cap is reached.
            for _ in range(self._reconnect_attempts):
                if delay >= cap or delay <= 0:
                    break
                delay *= config.reconnect_backoff
        delay = min(delay, cap)
        self._reconnect_attempts += 1
        logger.info("Reconnecting in %.1fs (attempt %d)", delay, self._reconnect_attempts)
        self._reconnect.arm(delay)

    def _reconnect_now(self) -> None:
        if self._session is not None or self._config is None:
            return
        if self._state is ConnectionState.FAILED:
            return
        self._open_session(asyncio.get_running_loop())

    def _handshake_expired(self, session: SocketSession) -> None:
        session.handshake_timer = None
        if session is not self._session or self._state is ConnectionState.READY:
            return
        logger.warning("Handshake did not complete on epoch %d; dropping socket", session.epoch)
        self._retire(session, reason="handshake timeout")
        self._close_socket_soon(session)

    # --- Frame handlers --------------------------------------------------------
    def _handle_handshake(self, frame: HandshakeFrame) -> None:
        session = self._session
        config = self._config
        if session is None or config is None:
            return

        if isinstance(frame, AuthRequired):
            logger.debug("auth_required (server %s); sending credential", frame.ha_version)
            self._post(session, build_auth(config.credential))
            return

        if session.handshake_timer is not None:
            session.handshake_timer.cancel()
            session.handshake_timer = None

        if isinstance(frame, AuthOk):
            self._ha_version = frame.ha_version
            self._reconnect_attempts = 0
            self._set_state(ConnectionState.READY)
            self._settle_ready_waiters(None)
            self._bus.emit(ConnectionReady(epoch=session.epoch, ha_version=frame.ha_version))
            self._bootstrap()
            return

        if isinstance(frame, AuthInvalid):
            error = AuthError(frame.message or "invalid access token")
            logger.error("Authentication rejected: %s", error)
            self._auth_error = error
            self._set_state(ConnectionState.FAILED)
            self._settle_ready_waiters(error)
            self._bus.emit(ConnectionErrored(error=error))
            self._retire(session, reason="auth_invalid")
            self._close_socket_soon(session)

    def _handle_result(self, frame: ResultFrame) -> bool:
        hook = self._bootstrap_hooks.pop(frame.id, None)
        if hook is not None:
            try:
                hook(frame)
            except Exception:
                logger.exception("bootstrap reply %s could not be applied", frame.id)
        return self._registry.resolve(frame)

    def _handle_state_changed(self, frame: EventFrame) -> None:
        entity_id = frame.entity_id
        new_state = frame.new_state
        if not entity_id or new_state is None:
            # Removal (or a malformed event); collaborators decide what it means.
            self._forward_message(frame.raw)
            return
        try:
            self._store.apply_delta(entity_id, new_state)
        except (TypeError, ValueError):
            logger.warning("state_changed for %s dropped: malformed new_state", entity_id, exc_info=True)

    def _forward_message(self, raw: Mapping[str, Any]) -> None:
        self._bus.emit(MessageReceived(frame=raw))

    # --- Bootstrap ---------------------------------------------------------------
    def _bootstrap(self) -> None:
        """Issue the post-handshake requests; their order is not significant."""

        self._bootstrap_request(build_subscribe_events(), "subscribe_events", None)
        self._bootstrap_request(build_get_states(), "get_states", self._store.apply_snapshot)
        self._bootstrap_request(build_get_services(), "get_services", self._catalog.apply_services)
        self._bootstrap_request(build_area_registry_list(), "area_registry", self._catalog.apply_areas)
        self._bootstrap_request(build_get_config(), "get_config", self._catalog.apply_server_config)

    def _bootstrap_request(
        self,
        body: Mapping[str, Any],
        label: str,
        apply: Optional[Callable[[Any], Any]],
    ) -> PendingHandle:
        def _on_reply(frame: ResultFrame) -> None:
            if not frame.success:
                logger.warning("bootstrap %s rejected: %s", label, frame.error)
                return
            if apply is not None:
                apply(frame.result if frame.result is not None else [])

        def _on_done(fut: asyncio.Future) -> None:
            self._bootstrap_hooks.pop(handle.id, None)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.warning("bootstrap %s failed: %s", label, exc)

        handle = self._registry.send(body)
        if not handle.done():
            # Applied while the result frame is routed so later deltas land on top.
            self._bootstrap_hooks[handle.id] = _on_reply
        handle.future.add_done_callback(_on_done)
        return handle

    # --- State bookkeeping -------------------------------------------------------
    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        if state in (ConnectionState.READY, ConnectionState.FAILED):
            logger.info("Connection state %s -> %s", previous.value, state.value)
        else:
            logger.debug("Connection state %s -> %s", previous.value, state.value)

    def _settle_ready_waiters(self, error: Optional[BaseException]) -> None:
        waiters, self._ready_waiters = self._ready_waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is None:
                waiter.set_result(None)
            else:
                waiter.set_exception(error)


__all__ = ["Connection", "ConnectionState", "SocketSession"]
