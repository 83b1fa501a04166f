"""Domain models for the notification pipeline."""

from .models import (
    NOTIFICATION_MESSAGE_TYPES,
    ClientNotification,
    DomainEvent,
    EventType,
    MessageType,
    NotificationMessage,
)

__all__ = [
    "EventType",
    "DomainEvent",
    "MessageType",
    "NotificationMessage",
    "NOTIFICATION_MESSAGE_TYPES",
    "ClientNotification",
]
