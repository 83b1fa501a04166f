"""Core domain models shared by the email and realtime paths.

- EventType / DomainEvent: what happened in the business layer
- MessageType / NotificationMessage: the realtime wire envelope
- ClientNotification: a notification held by one client session
"""

import itertools
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator


class EventType(str, Enum):
    """Domain events that can trigger notifications."""

    LEAVE_REQUEST_CREATED = "leave_request_created"
    LEAVE_REQUEST_CREATED_CONFIRMATION = "leave_request_created_confirmation"
    LEAVE_REQUEST_APPROVED = "leave_request_approved"
    LEAVE_REQUEST_DENIED = "leave_request_denied"
    LEAVE_REQUEST_CANCELLED = "leave_request_cancelled"
    TIME_ENTRY_REMINDER = "time_entry_reminder"
    TIME_ENTRY_APPROVED = "time_entry_approved"
    MONTHLY_REPORT = "monthly_report"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_CREATED = "account_created"


@dataclass(frozen=True)
class DomainEvent:
    """An immutable business occurrence.

    The payload is copied on construction and exposed read-only, so each
    subscriber (dispatcher, channel server) sees the same values no matter
    what the producer does with its own dict afterwards.
    """

    type: EventType
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "type", EventType(self.type))
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


class MessageType(str, Enum):
    """Realtime frame types.

    The first three carry user-facing notifications; the rest are control
    frames exchanged with the channel server.
    """

    LEAVE_REQUEST_UPDATE = "LEAVE_REQUEST_UPDATE"
    TIME_ENTRY_UPDATE = "TIME_ENTRY_UPDATE"
    SYSTEM_NOTICE = "SYSTEM_NOTICE"
    CONNECTION = "connection"
    PING = "ping"
    PONG = "pong"


NOTIFICATION_MESSAGE_TYPES = frozenset({
    MessageType.LEAVE_REQUEST_UPDATE.value,
    MessageType.TIME_ENTRY_UPDATE.value,
    MessageType.SYSTEM_NOTICE.value,
})


class NotificationMessage(BaseModel):
    """Wire unit ``{"type": ..., "data": {"message": ..., ...}}``.

    ``type`` is kept as a plain string so unknown future types still parse;
    notification types must carry a string ``data.message``.
    """

    type: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        if isinstance(v, MessageType):
            return v.value
        return v

    @model_validator(mode="after")
    def validate_notification_payload(self):
        if self.type in NOTIFICATION_MESSAGE_TYPES and not isinstance(self.data.get("message"), str):
            raise ValueError(f"{self.type} frames require a string data.message")
        return self

    @property
    def is_notification(self) -> bool:
        return self.type in NOTIFICATION_MESSAGE_TYPES

    @property
    def message(self) -> str:
        return self.data.get("message", "")


_id_sequence = itertools.count()


def _time_derived_id() -> str:
    # Millisecond timestamp plus a process-wide sequence keeps ids unique
    # when several frames arrive within the same millisecond.
    return f"{int(time.time() * 1000)}-{next(_id_sequence)}"


@dataclass
class ClientNotification:
    """A notification held in memory by one client session."""

    message: str
    id: str = field(default_factory=_time_derived_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False
