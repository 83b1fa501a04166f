"""Static registry of notifiable events.

Each entry maps a domain event type to the template that renders it, the
subject line, the variables the render context must provide, and how the
recipients are resolved. The table is built once at import and checked
against the template store by :func:`validate_registry` when a dispatcher is
constructed, so a typo in a template name fails at startup rather than on
the first leave approval.

Variable names are dotted paths into the render context
(``"employee.email"`` means ``context["employee"]["email"]``).
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from hr_notify.config.exceptions import ConfigurationError
from hr_notify.domain.models import EventType

from .payloads import MISSING, resolve_path

RecipientResolver = Callable[[Mapping[str, Any]], List[str]]


def recipient_at(path: str) -> RecipientResolver:
    """Resolver that sends to the single address found at ``path``."""

    def resolve(context: Mapping[str, Any]) -> List[str]:
        value = resolve_path(context, path)
        return [] if value is MISSING or not value else [str(value)]

    return resolve


def _cancellation_recipient(context: Mapping[str, Any]) -> List[str]:
    # Cancelled by the employee -> tell the manager; otherwise tell the employee
    if resolve_path(context, "cancelledBy") == resolve_path(context, "employee.name"):
        return recipient_at("manager.email")(context)
    return recipient_at("employee.email")(context)


@dataclass(frozen=True)
class EventSpec:
    """Registry entry for one event type.

    Attributes:
        event_type: Event this entry handles
        template_name: Template store key used for the HTML body
        subject: Jinja expression for the subject line (same context as the body)
        category: Settings category used for enable/disable switches
        required: Dotted variable paths that must be present
        optional: Dotted paths the template may reference but callers may omit
        defaults: Top-level values filled in when absent; callables receive the context
        date_fields: Dotted paths formatted with the configured date format
        recipients: Resolves the To addresses from the context
        companions: Further events rendered and sent in the same dispatch
    """

    event_type: EventType
    template_name: str
    subject: str
    category: str
    required: Tuple[str, ...]
    recipients: RecipientResolver
    optional: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    date_fields: Tuple[str, ...] = ()
    companions: Tuple[EventType, ...] = ()

    def apply_defaults(self, context: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``context`` with this entry's defaults filled in."""
        merged = dict(context)
        for key, default in self.defaults.items():
            if merged.get(key) is None:
                merged[key] = default(merged) if callable(default) else default
        return merged

    def missing_variables(self, context: Mapping[str, Any]) -> List[str]:
        """Required paths absent (or None) in ``context``, in declaration order."""
        missing = []
        for path in self.required:
            value = resolve_path(context, path)
            if value is MISSING or value is None:
                missing.append(path)
        return missing


_LEAVE_FIELDS = ("leaveRequest.type", "leaveRequest.startDate", "leaveRequest.endDate")
_LEAVE_DATES = ("leaveRequest.startDate", "leaveRequest.endDate")
_SYSTEM_MANAGER = {"name": "System"}


def _build_registry() -> Mapping[str, EventSpec]:
    specs = [
        EventSpec(
            event_type=EventType.LEAVE_REQUEST_CREATED,
            template_name="leave_request_created",
            subject="New Leave Request to Review",
            category="leave_request",
            required=("employee.name", "employee.email", "manager.name", "manager.email") + _LEAVE_FIELDS,
            optional=("employee.department", "leaveRequest.notes"),
            date_fields=_LEAVE_DATES,
            recipients=recipient_at("manager.email"),
            companions=(EventType.LEAVE_REQUEST_CREATED_CONFIRMATION,),
        ),
        EventSpec(
            event_type=EventType.LEAVE_REQUEST_CREATED_CONFIRMATION,
            template_name="leave_request_created_confirmation",
            subject="Your Leave Request Has Been Submitted",
            category="leave_request",
            required=("employee.name", "employee.email", "manager.name") + _LEAVE_FIELDS,
            date_fields=_LEAVE_DATES,
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.LEAVE_REQUEST_APPROVED,
            template_name="leave_request_approved",
            subject="Your Leave Request Has Been Approved",
            category="leave_request",
            required=("employee.name", "employee.email", "manager.name") + _LEAVE_FIELDS,
            defaults={"manager": _SYSTEM_MANAGER},
            date_fields=_LEAVE_DATES,
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.LEAVE_REQUEST_DENIED,
            template_name="leave_request_denied",
            subject="Your Leave Request Has Been Denied",
            category="leave_request",
            required=("employee.name", "employee.email", "manager.name", "reason") + _LEAVE_FIELDS,
            defaults={"manager": _SYSTEM_MANAGER, "reason": "No reason provided"},
            date_fields=_LEAVE_DATES,
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.LEAVE_REQUEST_CANCELLED,
            template_name="leave_request_cancelled",
            subject=(
                "{% if cancelledBy == employee.name %}Leave Request Cancelled by {{ employee.name }}"
                "{% else %}Your Leave Request Has Been Cancelled{% endif %}"
            ),
            category="leave_request",
            required=(
                "employee.name", "employee.email", "manager.name", "manager.email", "cancelledBy",
            ) + _LEAVE_FIELDS,
            defaults={"cancelledBy": lambda ctx: resolve_path(ctx, "employee.name", None)},
            date_fields=_LEAVE_DATES,
            recipients=_cancellation_recipient,
        ),
        EventSpec(
            event_type=EventType.TIME_ENTRY_REMINDER,
            template_name="time_entry_reminder",
            subject="Time Entry Reminder",
            category="time_entry",
            required=("employee.name", "employee.email", "missingEntries"),
            optional=("date",),
            defaults={"missingEntries": []},
            date_fields=("date",),
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.TIME_ENTRY_APPROVED,
            template_name="time_entry_approved",
            subject="Your Time Entry Has Been Approved",
            category="time_entry",
            required=(
                "employee.name", "employee.email", "timeEntry.date",
                "timeEntry.startTime", "timeEntry.endTime", "approvedBy",
            ),
            optional=("timeEntry.breakDuration", "timeEntry.project"),
            defaults={"approvedBy": "System"},
            date_fields=("timeEntry.date",),
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.MONTHLY_REPORT,
            template_name="monthly_report",
            subject="Your Monthly Time Report for {{ month }}/{{ year }}",
            category="monthly_report",
            required=("employee.name", "employee.email", "month", "year"),
            optional=(
                "report.totalDays", "report.workingDays", "report.totalHours",
                "report.overtimeHours", "report.leaveDays", "reportUrl",
            ),
            defaults={"report": {}},
            recipients=recipient_at("employee.email"),
        ),
        EventSpec(
            event_type=EventType.PASSWORD_RESET,
            template_name="password_reset",
            subject="Password Reset Request",
            category="system_notice",
            required=("user.name", "user.email", "resetUrl"),
            optional=("resetToken",),
            recipients=recipient_at("user.email"),
        ),
        EventSpec(
            event_type=EventType.ACCOUNT_CREATED,
            template_name="account_created",
            subject="Welcome to {{ company.name }} Time Management System",
            category="system_notice",
            required=("user.name", "user.email", "initialPassword", "loginUrl"),
            recipients=recipient_at("user.email"),
        ),
    ]
    return MappingProxyType({spec.event_type.value: spec for spec in specs})


EVENT_REGISTRY: Mapping[str, EventSpec] = _build_registry()


def get_event_spec(event_type: str) -> Optional[EventSpec]:
    """Look up a registry entry by event type value (or EventType)."""
    key = event_type.value if isinstance(event_type, EventType) else str(event_type)
    return EVENT_REGISTRY.get(key)


def validate_registry(template_names, registry: Mapping[str, EventSpec] = EVENT_REGISTRY) -> None:
    """Fail fast if any entry references a missing template or companion.

    Args:
        template_names: Names that have a shipped default template
        registry: Table to check (defaults to the global registry)

    Raises:
        ConfigurationError: Listing every broken reference
    """
    available = set(template_names)
    errors = []

    for key, spec in registry.items():
        if spec.template_name not in available:
            errors.append(f"Event '{key}' references unknown template '{spec.template_name}'")
        for companion in spec.companions:
            if companion.value not in registry:
                errors.append(f"Event '{key}' references unregistered companion '{companion.value}'")

    if errors:
        raise ConfigurationError(
            "Notification registry is inconsistent with the template store",
            errors=errors,
            suggestions=["Ship a default template for every registered event type"],
        )
