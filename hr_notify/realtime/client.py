"""Realtime client: connection manager for one application session.

Keeps a single websocket open to the channel server, turns inbound
``LEAVE_REQUEST_UPDATE`` frames into :class:`ClientNotification` records
(newest first) and reconnects on a fixed schedule when the connection
drops:

    DISCONNECTED -> CONNECTING -> OPEN -> CLOSED_RETRYING -> CONNECTING ...
                                       -> CLOSED_FINAL

The user hears about connectivity problems at most twice per outage: once
when the first error occurs and once when the client gives up.
"""

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, FrozenSet, List, Optional, Protocol

import aiohttp

from hr_notify.config.models import RealtimeConfig
from hr_notify.domain.models import ClientNotification, MessageType
from hr_notify.logging import get_logger

from .exceptions import MalformedMessage, RealtimeConnectionError
from .messages import decode_message

logger = get_logger(__name__, component="realtime_client")

ALERT_TITLE_CONNECTION = "Verbindungsfehler"
ALERT_TEXT_RECONNECTING = "Benachrichtigungen können nicht empfangen werden. Versuche neu zu verbinden..."
ALERT_TEXT_FINAL = "Verbindung konnte nicht hergestellt werden. Bitte laden Sie die Seite neu."
ALERT_TITLE_NOTIFICATION = "Neue Benachrichtigung"


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED_RETRYING = "CLOSED_RETRYING"
    CLOSED_FINAL = "CLOSED_FINAL"


@dataclass(frozen=True)
class Alert:
    """A transient user-visible message (a toast in the browser UI)."""

    title: str
    description: str
    variant: str = "default"  # "default" or "destructive"


class RealtimeSocket(Protocol):
    """Transport used by the client.

    ``receive`` returns the next text frame, None once the peer has closed
    the connection, and raises :class:`RealtimeConnectionError` on a
    transport error.
    """

    async def receive(self) -> Optional[str]:
        ...

    async def close(self) -> None:
        ...


ConnectFactory = Callable[[str], Awaitable[RealtimeSocket]]
AlertSink = Callable[[Alert], None]
Listener = Callable[[List[ClientNotification]], None]


class AiohttpSocket:
    """RealtimeSocket backed by an aiohttp client websocket."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self._session = session
        self._ws = ws

    async def receive(self) -> Optional[str]:
        msg = await self._ws.receive()
        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            return msg.data
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise RealtimeConnectionError(f"WebSocket error: {self._ws.exception()}")
        return None

    async def send(self, text: str) -> None:
        await self._ws.send_str(text)

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._session.close()


def aiohttp_connector(heartbeat: Optional[float] = None, timeout: float = 10.0) -> ConnectFactory:
    """Default connect factory opening an aiohttp websocket."""

    async def connect(url: str) -> AiohttpSocket:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, connect=timeout))
        try:
            ws = await session.ws_connect(url, heartbeat=heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await session.close()
            raise RealtimeConnectionError(f"Cannot connect to {url}: {e}") from e
        except BaseException:
            # Cancelled mid-handshake
            await session.close()
            raise
        return AiohttpSocket(session, ws)

    return connect


class RealtimeClient:
    """Connection manager with bounded fixed-delay reconnection.

    Args:
        url: Websocket URL of the channel server
        connect: Factory opening a socket (aiohttp by default)
        alert_sink: Receives user-visible alerts
        config: Retry limits, delay and notification alert switch
        accepted_types: Frame types that become notifications
        sleep: Awaitable delay used between attempts (injectable for tests)

    Use as ``async with RealtimeClient(url) as client:``; leaving the block
    closes the socket and cancels any pending reconnection.
    """

    def __init__(
        self,
        url: str,
        connect: Optional[ConnectFactory] = None,
        alert_sink: Optional[AlertSink] = None,
        config: Optional[RealtimeConfig] = None,
        accepted_types: FrozenSet[str] = frozenset({MessageType.LEAVE_REQUEST_UPDATE.value}),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url
        self.config = config or RealtimeConfig()
        self.accepted_types = accepted_types
        self._connect_factory = connect or aiohttp_connector(heartbeat=self.config.heartbeat)
        self._alert_sink = alert_sink
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._state_changed = asyncio.Event()
        self.reconnect_attempts = 0
        self._error_alerted = False
        self._final_alerted = False
        self._closing = False

        self._socket: Optional[RealtimeSocket] = None
        self._reader: Optional["asyncio.Task[None]"] = None
        self._reconnect: Optional["asyncio.Task[None]"] = None

        self._notifications: List[ClientNotification] = []
        self._listeners: List[Listener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def max_attempts(self) -> int:
        return self.config.max_reconnect_attempts

    @property
    def reconnect_delay(self) -> float:
        return self.config.reconnect_delay_ms / 1000.0

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect is not None and not self._reconnect.done()

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        self._state_changed.set()

    async def wait_for_state(self, *states: ConnectionState, timeout: Optional[float] = None) -> ConnectionState:
        """Block until the client is in one of ``states``."""

        async def _wait() -> None:
            while self._state not in states:
                self._state_changed.clear()
                await self._state_changed.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self._state

    # Lifecycle

    async def start(self) -> None:
        """Make the first connection attempt."""
        if self._state != ConnectionState.DISCONNECTED:
            return
        self._closing = False
        await self._connect()

    async def close(self) -> None:
        """Close the socket and cancel any pending reconnection."""
        self._closing = True

        current = asyncio.current_task()
        for task in (self._reconnect, self._reader):
            if task is not None and task is not current and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reconnect = None
        self._reader = None

        await self._release_socket()
        self._set_state(ConnectionState.DISCONNECTED)

    async def __aenter__(self) -> "RealtimeClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False

    # Connection handling

    async def _connect(self) -> None:
        if self._closing:
            return
        self._set_state(ConnectionState.CONNECTING)

        try:
            socket = await self._connect_factory(self.url)
        except (RealtimeConnectionError, OSError) as e:
            self._on_error(e)
            self._on_close()
            return

        if self._closing:
            await socket.close()
            return

        self._socket = socket
        self.reconnect_attempts = 0
        self._error_alerted = False
        self._final_alerted = False
        self._set_state(ConnectionState.OPEN)
        logger.info(f"Realtime connection established to {self.url}", extra={"event": "realtime.client.open"})

        self._reader = asyncio.create_task(self._read_loop(socket))

    async def _read_loop(self, socket: RealtimeSocket) -> None:
        try:
            while True:
                frame = await socket.receive()
                if frame is None:
                    break
                self._handle_frame(frame)
        except (RealtimeConnectionError, OSError) as e:
            self._on_error(e)

        await self._release_socket()
        self._on_close()

    async def _release_socket(self) -> None:
        socket, self._socket = self._socket, None
        if socket is None:
            return
        try:
            await socket.close()
        except (RealtimeConnectionError, OSError) as e:
            logger.debug(f"Error closing realtime socket: {e}")

    def _on_error(self, error: Exception) -> None:
        logger.warning(
            f"Realtime connection error: {error}",
            extra={"event": "realtime.client.error", "attempt": self.reconnect_attempts},
        )
        if self._closing:
            return
        if self.reconnect_attempts == 0 and not self._error_alerted:
            self._error_alerted = True
            self._alert(Alert(ALERT_TITLE_CONNECTION, ALERT_TEXT_RECONNECTING, "destructive"))

    def _on_close(self) -> None:
        if self._closing:
            self._set_state(ConnectionState.DISCONNECTED)
            return

        if self.reconnect_attempts < self.max_attempts:
            self.reconnect_attempts += 1
            self._set_state(ConnectionState.CLOSED_RETRYING)
            logger.info(
                f"Reconnecting in {self.reconnect_delay:.1f}s "
                f"(attempt {self.reconnect_attempts}/{self.max_attempts})",
                extra={"event": "realtime.client.retry", "attempt": self.reconnect_attempts},
            )
            self._schedule_reconnect()
            return

        self._set_state(ConnectionState.CLOSED_FINAL)
        logger.error(
            f"Giving up on realtime connection after {self.max_attempts} attempts",
            extra={"event": "realtime.client.final"},
        )
        if not self._final_alerted:
            self._final_alerted = True
            self._alert(Alert(ALERT_TITLE_CONNECTION, ALERT_TEXT_FINAL, "destructive"))

    def _schedule_reconnect(self) -> None:
        previous = self._reconnect
        if previous is not None and previous is not asyncio.current_task() and not previous.done():
            previous.cancel()
        self._reconnect = asyncio.create_task(self._reconnect_after(self.reconnect_delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        await self._connect()

    # Inbound frames

    def _handle_frame(self, raw: Any) -> None:
        try:
            message = decode_message(raw)
        except MalformedMessage as e:
            logger.warning(f"Discarding malformed realtime frame: {e}")
            return

        if message.type not in self.accepted_types:
            logger.debug(f"Ignoring realtime frame of type {message.type}")
            return

        notification = ClientNotification(message=message.message)
        self._notifications.insert(0, notification)
        self._notify_listeners()

        if self.config.show_notification_alerts:
            self._alert(Alert(ALERT_TITLE_NOTIFICATION, notification.message))

    # Notification list

    @property
    def notifications(self) -> List[ClientNotification]:
        """Snapshot of held notifications, most recent first."""
        return [replace(n) for n in self._notifications]

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def mark_all_as_read(self) -> None:
        changed = False
        for notification in self._notifications:
            if not notification.read:
                notification.read = True
                changed = True
        if changed:
            self._notify_listeners()

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read. Returns False if the id is unknown."""
        for notification in self._notifications:
            if notification.id == notification_id:
                if not notification.read:
                    notification.read = True
                    self._notify_listeners()
                return True
        return False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a snapshot whenever the list changes.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self) -> None:
        snapshot = self.notifications
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Notification listener failed")

    def _alert(self, alert: Alert) -> None:
        if self._alert_sink is None:
            return
        try:
            self._alert_sink(alert)
        except Exception:
            logger.exception("Alert sink failed")
