"""Realtime channel server on aiohttp websockets.

Each connected client gets a bounded outbound queue drained by its own
writer task. Broadcasting only enqueues, so a slow or stuck browser can
never block the business logic that publishes events; when a client's
queue is full its oldest frame is dropped.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from aiohttp import WSCloseCode, WSMsgType, web

from hr_notify.config.models import RealtimeConfig
from hr_notify.domain.models import DomainEvent, MessageType, NotificationMessage
from hr_notify.logging import get_logger
from hr_notify.logging.context import log_context
from hr_notify.utils.timestamps import format_timestamp, utc_now

from .exceptions import MalformedMessage
from .messages import control_frame, decode_message, encode_message, event_to_message

logger = get_logger(__name__, component="realtime")

Frame = Union[NotificationMessage, Mapping[str, Any]]


@dataclass
class ConnectedClient:
    """Server-side state for one websocket connection."""

    connection_id: str
    ws: web.WebSocketResponse
    queue: "asyncio.Queue[str]"
    user_id: Optional[str] = None
    remote: Optional[str] = None
    connected_at: datetime = field(default_factory=utc_now)
    dropped_frames: int = 0
    writer: Optional["asyncio.Task[None]"] = None


class RealtimeChannelServer:
    """Websocket fan-out of domain events to connected clients.

    Routes:
        GET <config.path>  websocket endpoint (optional ``user_id`` query parameter)
        GET /health        liveness and connection count

    Publishing methods must be called on the server's event loop; use
    :meth:`publish_threadsafe` from worker threads.
    """

    def __init__(self, config: Optional[RealtimeConfig] = None):
        self.config = config or RealtimeConfig()
        self.clients: Dict[str, ConnectedClient] = {}
        self.started_at = time.monotonic()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.config.path, self.handle_websocket)
        app.router.add_get("/health", self.handle_health)
        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _on_startup(self, app: web.Application) -> None:
        self._loop = asyncio.get_running_loop()
        logger.info(
            f"Realtime channel server listening on {self.config.path}",
            extra={"event": "realtime.server.start"},
        )

    async def _on_shutdown(self, app: web.Application) -> None:
        logger.info(
            f"Realtime channel server shutting down, closing {len(self.clients)} connections",
            extra={"event": "realtime.server.stop"},
        )
        for client in list(self.clients.values()):
            await client.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        self._loop = None

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "timestamp": format_timestamp(utc_now()),
            "uptime": round(time.monotonic() - self.started_at, 3),
            "connections": len(self.clients),
        })

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=self.config.heartbeat)
        await ws.prepare(request)

        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        client = ConnectedClient(
            connection_id=uuid.uuid4().hex,
            ws=ws,
            queue=asyncio.Queue(maxsize=self.config.outbound_queue_size),
            user_id=request.query.get("user_id") or None,
            remote=request.remote,
        )

        with log_context(connection_id=client.connection_id):
            self.clients[client.connection_id] = client
            client.writer = asyncio.create_task(self._drain(client))
            logger.info(
                f"WebSocket client connected: {client.connection_id} from {client.remote}",
                extra={"event": "realtime.client.connected", "user_id": client.user_id},
            )

            self._enqueue(client, control_frame(
                MessageType.CONNECTION,
                status="connected",
                connectionId=client.connection_id,
            ))

            try:
                async for msg in ws:
                    if msg.type == WSMsgType.TEXT:
                        self._handle_inbound(client, msg.data)
                    elif msg.type == WSMsgType.ERROR:
                        logger.warning(
                            f"WebSocket connection {client.connection_id} closed with error: {ws.exception()}",
                            extra={"event": "realtime.client.error"},
                        )
            finally:
                self.clients.pop(client.connection_id, None)
                await self._stop_writer(client)
                logger.info(
                    f"WebSocket client disconnected: {client.connection_id}",
                    extra={"event": "realtime.client.disconnected", "dropped_frames": client.dropped_frames},
                )

        return ws

    async def _stop_writer(self, client: ConnectedClient) -> None:
        writer = client.writer
        if writer is None:
            return
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            if not writer.cancelled():
                raise
        except Exception as e:
            logger.error(
                f"Writer for {client.connection_id} failed: {e}",
                exc_info=True,
                extra={"event": "realtime.writer.error"},
            )

    def _handle_inbound(self, client: ConnectedClient, raw: str) -> None:
        try:
            message = decode_message(raw)
        except MalformedMessage as e:
            logger.warning(f"Discarding malformed frame from {client.connection_id}: {e}")
            return

        if message.type == MessageType.PING.value:
            self._enqueue(client, control_frame(MessageType.PONG))
        else:
            logger.debug(f"Ignoring client frame of type {message.type} from {client.connection_id}")

    async def _drain(self, client: ConnectedClient) -> None:
        while True:
            frame = await client.queue.get()
            if client.ws.closed:
                return
            try:
                await client.ws.send_str(frame)
            except ConnectionResetError as e:
                logger.debug(f"Stopped writing to {client.connection_id}: {e}")
                return

    def _enqueue(self, client: ConnectedClient, frame: Frame) -> None:
        text = encode_message(frame)

        if client.queue.full():
            client.queue.get_nowait()
            client.dropped_frames += 1
            logger.warning(
                f"Outbound queue full for {client.connection_id}, dropped oldest frame",
                extra={"event": "realtime.frame.dropped", "dropped_frames": client.dropped_frames},
            )
        client.queue.put_nowait(text)

    def broadcast(self, message: Frame) -> int:
        """Queue ``message`` for every connected client.

        Returns:
            Number of clients the frame was queued for
        """
        clients = list(self.clients.values())
        for client in clients:
            self._enqueue(client, message)
        logger.debug(f"Broadcast frame to {len(clients)} clients")
        return len(clients)

    def send_to_user(self, user_id: str, message: Frame) -> int:
        """Queue ``message`` for every connection registered for ``user_id``."""
        clients = [c for c in self.clients.values() if c.user_id == str(user_id)]
        for client in clients:
            self._enqueue(client, message)
        return len(clients)

    def publish(self, event: DomainEvent, user_id: Optional[str] = None) -> int:
        """Live-alert subscriber for a domain event."""
        message = event_to_message(event)
        if user_id is not None:
            return self.send_to_user(user_id, message)
        return self.broadcast(message)

    def publish_threadsafe(self, event: DomainEvent, user_id: Optional[str] = None) -> None:
        """Schedule :meth:`publish` on the server loop from another thread."""
        loop = self._loop
        if loop is None:
            logger.warning(f"Channel server not running, dropping live alert for {event.type.value}")
            return
        try:
            loop.call_soon_threadsafe(self.publish, event, user_id)
        except RuntimeError as e:
            # Loop closed between the check and the call
            logger.warning(f"Channel server stopped, dropping live alert for {event.type.value}: {e}")

