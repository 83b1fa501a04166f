"""Realtime in-browser alerts over websockets.

- RealtimeChannelServer: aiohttp websocket fan-out of domain events
- RealtimeClient: session connection manager with bounded reconnection
- Wire codec: encode_message / decode_message / event_to_message
"""

from .client import (
    Alert,
    AiohttpSocket,
    ConnectionState,
    RealtimeClient,
    aiohttp_connector,
)
from .exceptions import MalformedMessage, RealtimeConnectionError, RealtimeError
from .messages import control_frame, decode_message, encode_message, event_to_message, message_type_for
from .server import ConnectedClient, RealtimeChannelServer

__all__ = [
    "RealtimeChannelServer",
    "ConnectedClient",
    "RealtimeClient",
    "ConnectionState",
    "Alert",
    "AiohttpSocket",
    "aiohttp_connector",
    "encode_message",
    "decode_message",
    "event_to_message",
    "message_type_for",
    "control_frame",
    "RealtimeError",
    "RealtimeConnectionError",
    "MalformedMessage",
]
