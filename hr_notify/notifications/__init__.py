"""Templated email notifications for HR domain events.

This package provides the complete email path:
- NotificationDispatcher: Rate limiting, validation, rendering and delivery
- TemplateStore: Default templates with custom overrides and reset
- TemplateRenderer: Sandboxed Jinja2 rendering with strict placeholders
- Delivery providers: SMTP, sendmail and an in-memory preview sink
- NotificationAdmin: Template and provider settings administration

Business logic calls ``send_notification(event_type, context)``; failures
come back as a NotificationResult instead of an exception.
"""

from .admin import NotificationAdmin
from .dispatcher import NotificationDispatcher
from .models import (
    DeliveryError,
    DeliveryResult,
    MissingVariable,
    NotificationError,
    NotificationResult,
    OutboundEmail,
    RateLimited,
    RenderedMessage,
    RenderError,
    Template,
    UnknownTemplate,
    UnregisteredEventType,
)
from .providers import (
    DeliveryProvider,
    PreviewProvider,
    SendmailProvider,
    SMTPProvider,
    get_provider,
)
from .rate_limit import SlidingWindowRateLimiter
from .registry import EVENT_REGISTRY, EventSpec, get_event_spec, validate_registry
from .smtp_client import SMTPClient, parse_recipients
from .store import InMemoryOverrideStore, TemplateStore, load_default_templates
from .templates import TemplateRenderer, html_to_text

__all__ = [
    # Main services
    "NotificationDispatcher",
    "NotificationAdmin",
    # Templates
    "TemplateStore",
    "InMemoryOverrideStore",
    "TemplateRenderer",
    "load_default_templates",
    "html_to_text",
    # Registry
    "EVENT_REGISTRY",
    "EventSpec",
    "get_event_spec",
    "validate_registry",
    # Delivery
    "DeliveryProvider",
    "SMTPProvider",
    "SendmailProvider",
    "PreviewProvider",
    "get_provider",
    "SMTPClient",
    "parse_recipients",
    "SlidingWindowRateLimiter",
    # Results and data
    "DeliveryResult",
    "NotificationResult",
    "OutboundEmail",
    "RenderedMessage",
    "Template",
    # Exceptions
    "NotificationError",
    "UnregisteredEventType",
    "MissingVariable",
    "UnknownTemplate",
    "RenderError",
    "DeliveryError",
    "RateLimited",
]
