"""Notification dispatcher for templated email.

This module provides the NotificationDispatcher class that orchestrates the
email path: rate limiting, registry lookup, context validation, template
resolution, rendering, and handoff to the active delivery provider.

Business logic calls :meth:`NotificationDispatcher.send_notification`,
which never raises; a failed email must not roll back the leave approval or
time entry that produced it. :meth:`NotificationDispatcher.dispatch` is the
same pipeline for callers that want exceptions.
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from hr_notify.config.models import CompanyConfig, NotificationSettings, ProviderConfig
from hr_notify.domain.models import DomainEvent, EventType
from hr_notify.logging import get_logger
from hr_notify.logging.context import log_context

from .models import (
    DeliveryError,
    DeliveryResult,
    MissingVariable,
    NotificationError,
    NotificationResult,
    OutboundEmail,
    RateLimited,
    UnregisteredEventType,
)
from .payloads import build_render_context
from .providers import DeliveryProvider, get_provider
from .rate_limit import SlidingWindowRateLimiter
from .registry import EVENT_REGISTRY, EventSpec, validate_registry
from .store import TemplateStore
from .templates import TemplateRenderer

logger = get_logger(__name__, component="dispatcher")


class NotificationDispatcher:
    """Maps domain events to rendered emails and delivers them.

    Flow for one ``dispatch`` call:
    1. Take a slot from the rate limiter (``RateLimited`` when full)
    2. Look up the event (and its companions) in the registry
    3. Apply defaults and validate required variables for every message
    4. Skip if the event's category is switched off
    5. Resolve and render every template
    6. Hand every message to the active provider

    Steps 2-5 complete for all messages before anything is sent, so a
    validation or render failure never leaves a partial send behind.

    Provider settings are replaceable at runtime; the next dispatch uses
    the new settings.
    """

    def __init__(
        self,
        store: Optional[TemplateStore] = None,
        renderer: Optional[TemplateRenderer] = None,
        provider_config: Optional[ProviderConfig] = None,
        settings: Optional[NotificationSettings] = None,
        company: Optional[CompanyConfig] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        provider: Optional[DeliveryProvider] = None,
        registry: Mapping[str, EventSpec] = EVENT_REGISTRY,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize the dispatcher.

        Args:
            store: Template store (creates one with in-memory overrides if None)
            renderer: Render engine (shares the store's renderer if None)
            provider_config: Initial provider settings (SMTP defaults if None)
            settings: Enable switches and date format
            company: Company block merged into every render context
            rate_limiter: Sliding-window limiter (unlimited if None)
            provider: Fixed provider instance; if None one is created from
                ``provider_config.kind`` and recreated when the kind changes
            registry: Event registry (the static table by default)
            logger_instance: Logger instance (uses module logger if None)

        Raises:
            ConfigurationError: If the registry references a template the
                store does not ship
        """
        self.store = store or TemplateStore(renderer=renderer)
        self.renderer = renderer or self.store.renderer
        self.settings = settings or NotificationSettings()
        self.company = company or CompanyConfig()
        self.rate_limiter = rate_limiter
        self.registry = registry
        self.logger = logger_instance or logger

        validate_registry(self.store.default_names, self.registry)

        self._config_lock = threading.Lock()
        self._provider_config = provider_config or ProviderConfig()
        self._fixed_provider = provider
        self._provider: Optional[DeliveryProvider] = provider

    @property
    def provider_config(self) -> ProviderConfig:
        with self._config_lock:
            return self._provider_config

    def update_provider_config(self, config: ProviderConfig) -> None:
        """Replace the provider settings; takes effect on the next send."""
        with self._config_lock:
            previous_kind = self._provider_config.kind
            self._provider_config = config
            if self._fixed_provider is None and config.kind != previous_kind:
                self._provider = None

        self.logger.info(
            f"Provider settings updated (kind={config.kind})",
            extra={"event": "provider.config.updated", "provider": config.kind},
        )

    def active_provider(self) -> Tuple[DeliveryProvider, ProviderConfig]:
        """Return the provider and the settings snapshot to use for one send."""
        with self._config_lock:
            config = self._provider_config
            if self._provider is None:
                self._provider = get_provider(config)
            return self._provider, config

    def _lookup(self, event_type: Any) -> EventSpec:
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)
        spec = self.registry.get(key)
        if spec is None:
            raise UnregisteredEventType(key)
        return spec

    def _prepare(self, spec: EventSpec, context: Mapping[str, Any]) -> Dict[str, Any]:
        prepared = spec.apply_defaults(context)
        missing = spec.missing_variables(prepared)
        if missing:
            raise MissingVariable(missing[0], spec.event_type.value)
        return prepared

    def _build_email(self, spec: EventSpec, context: Mapping[str, Any], config: ProviderConfig) -> OutboundEmail:
        recipients = spec.recipients(context)
        if not recipients:
            raise MissingVariable("recipient", spec.event_type.value)

        template = self.store.get(spec.template_name)
        render_context = build_render_context(
            spec, context, self.company, date_format=self.settings.date_format
        )
        rendered = self.renderer.render(template, render_context, spec.subject)

        bcc = [config.admin_email] if config.bcc_admin and config.admin_email else []
        return OutboundEmail(
            recipients=recipients,
            subject=rendered.subject,
            html_body=rendered.html_body,
            text_body=rendered.text_body,
            template_name=spec.template_name,
            bcc=bcc,
            headers={
                "X-Application": f"{self.company.name} Time Management",
                "X-Template": spec.template_name,
            },
        )

    def dispatch(
        self,
        event_type: Any,
        context: Mapping[str, Any],
        provider: Optional[DeliveryProvider] = None,
        force: bool = False,
    ) -> DeliveryResult:
        """Render and deliver the email(s) for ``event_type``.

        Args:
            event_type: Registered event type name (or EventType)
            context: Render variables supplied by business logic
            provider: Provider to use instead of the active one (e.g. a
                PreviewProvider for admin test sends)
            force: Send even if the event's category is switched off

        Returns:
            DeliveryResult with status "sent", "previewed" or "skipped"

        Raises:
            RateLimited: Too many dispatches within the window
            UnregisteredEventType: Event type has no registry entry
            MissingVariable: A required variable is absent
            UnknownTemplate: The template store has no body for the name
            RenderError: Unresolved placeholder or malformed markup
            DeliveryError: The provider failed (not retried)
        """
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        spec = self._lookup(event_type)
        specs = [spec] + [self._lookup(companion) for companion in spec.companions]
        contexts = [self._prepare(s, context) for s in specs]

        if not force and not self.settings.is_enabled(spec.category):
            self.logger.info(
                f"Notifications disabled for {spec.event_type.value} (category {spec.category})",
                extra={"event": "notification.skip", "reason": "category_disabled"},
            )
            active_kind = self.provider_config.kind
            return DeliveryResult(
                event_type=spec.event_type.value,
                status="skipped",
                provider=active_kind,
                reason=f"category '{spec.category}' disabled",
            )

        if provider is not None:
            config = self.provider_config
        else:
            provider, config = self.active_provider()

        emails = [self._build_email(s, ctx, config) for s, ctx in zip(specs, contexts)]

        for email in emails:
            try:
                provider.send(email, config)
            except DeliveryError:
                raise
            except Exception as e:
                raise DeliveryError(f"Unexpected error from {provider.kind} provider: {e}") from e

            self.logger.info(
                f"Notification {email.template_name} handed to {provider.kind} for {', '.join(email.recipients)}",
                extra={
                    "event": "notification.dispatch.success",
                    "template": email.template_name,
                    "provider": provider.kind,
                    "recipients": email.recipients,
                },
            )

        return DeliveryResult(
            event_type=spec.event_type.value,
            status=provider.delivered_status,
            provider=provider.kind,
            messages=emails,
        )

    def send_notification(self, event_type: Any, context: Mapping[str, Any]) -> NotificationResult:
        """Dispatch without raising.

        Every failure is logged and returned as a result value. Rate-limited
        calls are reported as "rate_limited" and dropped, not queued.
        """
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)

        with log_context(event_type=key):
            try:
                delivery = self.dispatch(key, context)
            except RateLimited as e:
                self.logger.warning(
                    f"Notification {key} dropped: {e}",
                    extra={"event": "notification.rate_limited", "retry_after": round(e.retry_after, 1)},
                )
                return NotificationResult(
                    event_type=key,
                    status="rate_limited",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            except NotificationError as e:
                self.logger.error(
                    f"Notification {key} failed: {e}",
                    extra={"event": "notification.dispatch.failure", "error_type": type(e).__name__},
                )
                return NotificationResult(
                    event_type=key,
                    status="failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            except Exception as e:
                self.logger.error(
                    f"Unexpected error sending notification {key}: {e}",
                    exc_info=True,
                    extra={"event": "notification.dispatch.failure", "error_type": type(e).__name__},
                )
                return NotificationResult(
                    event_type=key,
                    status="failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return NotificationResult(event_type=key, status=delivery.status, delivery=delivery)

    def publish(self, event: DomainEvent) -> NotificationResult:
        """Email path subscriber for a domain event."""
        with log_context(event_id=event.event_id):
            return self.send_notification(event.type, event.payload)

    def send_many(self, events: List[DomainEvent]) -> List[NotificationResult]:
        """Publish several events, continuing past individual failures."""
        results = [self.publish(event) for event in events]

        counts: Dict[str, int] = {}
        for result in results:
            counts[result.status] = counts.get(result.status, 0) + 1
        summary = ", ".join(f"{count} {status}" for status, count in sorted(counts.items()))
        self.logger.info(f"Notification batch complete: {summary or 'nothing to send'} (total: {len(results)})")

        return results
