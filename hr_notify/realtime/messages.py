"""Wire codec for realtime notification frames.

Every frame is one JSON text message ``{"type": ..., "data": {...}}``.
Decoding is strict about shape (object with a string ``type``; notification
types need a string ``data.message``) and lenient about extra fields.
"""

import json
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from hr_notify.domain.models import DomainEvent, EventType, MessageType, NotificationMessage
from hr_notify.utils.timestamps import format_date, format_timestamp, utc_now

from .exceptions import MalformedMessage


def encode_message(message: Union[NotificationMessage, Mapping[str, Any]]) -> str:
    """Serialize a notification message or a control frame to JSON text."""
    payload = message.model_dump() if isinstance(message, NotificationMessage) else dict(message)
    return json.dumps(payload, ensure_ascii=False, default=str)


def decode_message(raw: Any) -> NotificationMessage:
    """Parse one inbound text frame.

    Raises:
        MalformedMessage: If the frame is not JSON or not a valid envelope
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Frame is not UTF-8: {e}") from e

    if not isinstance(raw, str):
        raise MalformedMessage(f"Expected a text frame, got {type(raw).__name__}")

    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise MalformedMessage(f"Frame is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedMessage("Frame must be a JSON object")

    data = payload.get("data", {})
    if not isinstance(data, dict):
        raise MalformedMessage("Frame 'data' must be a JSON object")

    try:
        return NotificationMessage(type=payload.get("type"), data=data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid frame: {e.errors()[0]['msg']}") from e


def control_frame(message_type: MessageType, **fields: Any) -> Dict[str, Any]:
    """Server control frame such as the connection welcome or a pong."""
    return {"type": message_type.value, **fields, "timestamp": format_timestamp(utc_now())}


def _leave_summary(payload: Mapping[str, Any]) -> str:
    employee = (payload.get("employee") or {}).get("name", "Unbekannt")
    leave = payload.get("leaveRequest") or {}
    start = format_date(leave.get("startDate", ""))
    end = format_date(leave.get("endDate", ""))
    period = f" ({start} - {end})" if start and end else ""
    return f"{employee}{period}"


_EVENT_TEXT: Dict[EventType, Callable[[Mapping[str, Any]], str]] = {
    EventType.LEAVE_REQUEST_CREATED: lambda p: f"Neuer Urlaubsantrag von {_leave_summary(p)}",
    EventType.LEAVE_REQUEST_APPROVED: lambda p: f"Urlaubsantrag genehmigt: {_leave_summary(p)}",
    EventType.LEAVE_REQUEST_DENIED: lambda p: f"Urlaubsantrag abgelehnt: {_leave_summary(p)}",
    EventType.LEAVE_REQUEST_CANCELLED: lambda p: f"Urlaubsantrag storniert: {_leave_summary(p)}",
    EventType.TIME_ENTRY_REMINDER: lambda p: "Bitte tragen Sie Ihre fehlenden Arbeitszeiten ein",
    EventType.TIME_ENTRY_APPROVED: lambda p: (
        f"Zeiteintrag vom {format_date((p.get('timeEntry') or {}).get('date', ''))} genehmigt"
    ),
    EventType.MONTHLY_REPORT: lambda p: f"Monatsbericht {p.get('month', '')}/{p.get('year', '')} ist verfügbar",
}

_LEAVE_EVENTS = frozenset({
    EventType.LEAVE_REQUEST_CREATED,
    EventType.LEAVE_REQUEST_CREATED_CONFIRMATION,
    EventType.LEAVE_REQUEST_APPROVED,
    EventType.LEAVE_REQUEST_DENIED,
    EventType.LEAVE_REQUEST_CANCELLED,
})

_TIME_ENTRY_EVENTS = frozenset({EventType.TIME_ENTRY_REMINDER, EventType.TIME_ENTRY_APPROVED})


def message_type_for(event_type: EventType) -> MessageType:
    if event_type in _LEAVE_EVENTS:
        return MessageType.LEAVE_REQUEST_UPDATE
    if event_type in _TIME_ENTRY_EVENTS:
        return MessageType.TIME_ENTRY_UPDATE
    return MessageType.SYSTEM_NOTICE


def event_to_message(event: DomainEvent, text: Optional[str] = None) -> NotificationMessage:
    """Build the wire message broadcast for ``event``.

    Args:
        event: Domain event to announce
        text: Message shown to the user (derived from the event if None)
    """
    if text is None:
        describe = _EVENT_TEXT.get(event.type)
        text = describe(event.payload) if describe else event.type.value.replace("_", " ").capitalize()

    return NotificationMessage(
        type=message_type_for(event.type),
        data={
            "message": text,
            "event": event.type.value,
            "eventId": event.event_id,
            "timestamp": format_timestamp(event.occurred_at),
        },
    )
