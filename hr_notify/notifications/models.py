"""Result types and exceptions for the email notification path."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class UnregisteredEventType(NotificationError):
    """Raised when dispatch is asked for an event type with no registry entry."""

    def __init__(self, event_type: str):
        super().__init__(f"No notification registered for event type: {event_type}")
        self.event_type = event_type


class MissingVariable(NotificationError):
    """Raised when a required render-context variable is absent."""

    def __init__(self, name: str, event_type: Optional[str] = None):
        where = f" for {event_type}" if event_type else ""
        super().__init__(f"Missing required variable '{name}'{where}")
        self.name = name
        self.event_type = event_type


class UnknownTemplate(NotificationError):
    """Raised when neither a default nor a custom template exists for a name."""

    def __init__(self, name: str):
        super().__init__(f"Template not found: {name}")
        self.name = name


class RenderError(NotificationError):
    """Raised when a template cannot be compiled or rendered."""

    pass


class DeliveryError(NotificationError):
    """Raised when the delivery provider fails (connection, auth, timeout)."""

    pass


class RateLimited(NotificationError):
    """Raised when dispatch calls exceed the configured sliding-window limit."""

    def __init__(self, limit: int, window_seconds: int, retry_after: float):
        super().__init__(
            f"Rate limit exceeded: {limit} dispatches per {window_seconds}s "
            f"(retry in {retry_after:.1f}s)"
        )
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after


@dataclass(frozen=True)
class Template:
    """Effective template for a name: the custom override if any, else the default."""

    name: str
    body: str
    is_custom: bool = False


@dataclass(frozen=True)
class RenderedMessage:
    """Output of the render engine."""

    subject: str
    html_body: str
    text_body: str


@dataclass(frozen=True)
class OutboundEmail:
    """A rendered message addressed for delivery."""

    recipients: List[str]
    subject: str
    html_body: str
    text_body: str
    template_name: str
    bcc: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    """Outcome of a successful ``dispatch`` call.

    Attributes:
        event_type: Registered event type that was dispatched
        status: "sent", "previewed" or "skipped"
        provider: Provider kind that handled the messages
        messages: Emails handed to the provider (captured content in preview mode)
        reason: Why the dispatch was skipped, if it was
    """

    event_type: str
    status: str  # "sent", "previewed", "skipped"
    provider: str
    messages: List[OutboundEmail] = field(default_factory=list)
    reason: Optional[str] = None

    def is_success(self) -> bool:
        return self.status in ("sent", "previewed")


@dataclass
class NotificationResult:
    """Result value returned to business-logic callers by ``send_notification``.

    Never raised; a failed notification must not fail the business
    transaction that produced it.
    """

    event_type: str
    status: str  # "sent", "previewed", "skipped", "rate_limited", "failed"
    error: Optional[str] = None
    error_type: Optional[str] = None
    delivery: Optional[DeliveryResult] = None

    def is_success(self) -> bool:
        return self.status in ("sent", "previewed")
