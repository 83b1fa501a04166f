"""Exceptions for the realtime channel."""


class RealtimeError(Exception):
    """Base exception for realtime channel errors."""

    pass


class RealtimeConnectionError(RealtimeError):
    """Raised when the socket cannot be opened or fails while open."""

    pass


class MalformedMessage(RealtimeError):
    """Raised when an inbound frame cannot be decoded."""

    pass
