"""Time-entry reminder job.

Asks a collaborator for employees with missing time entries and sends each
one a ``time_entry_reminder`` email. Where the list comes from (database
query, HR system export) is up to the caller.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from hr_notify.domain.models import DomainEvent, EventType
from hr_notify.logging import get_logger
from hr_notify.notifications.dispatcher import NotificationDispatcher
from hr_notify.notifications.models import NotificationResult

logger = get_logger(__name__, component="reminders")

ReminderSource = Callable[[], Iterable[Mapping[str, Any]]]


@dataclass
class ReminderRunSummary:
    """Counts for one reminder run."""

    total: int = 0
    statuses: Dict[str, int] = field(default_factory=dict)

    def record(self, result: NotificationResult) -> None:
        self.total += 1
        self.statuses[result.status] = self.statuses.get(result.status, 0) + 1

    @property
    def failed(self) -> int:
        return self.statuses.get("failed", 0) + self.statuses.get("rate_limited", 0)


class ReminderJob:
    """Callable scheduled by :class:`SchedulerService`.

    Args:
        dispatcher: Email dispatcher
        source: Returns one context per employee, each with ``employee``
            (name, email) and ``missingEntries`` (list of dates)
        publish: Optional live-alert hook called with the domain event
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        source: ReminderSource,
        publish: Optional[Callable[[DomainEvent], Any]] = None,
    ):
        self.dispatcher = dispatcher
        self.source = source
        self.publish = publish

    def run(self) -> ReminderRunSummary:
        summary = ReminderRunSummary()

        try:
            contexts: List[Mapping[str, Any]] = list(self.source())
        except Exception as e:
            logger.error(
                f"Could not load employees with missing time entries: {e}",
                exc_info=True,
                extra={"event": "reminders.source.failure"},
            )
            return summary

        for context in contexts:
            if not context.get("missingEntries"):
                continue

            event = DomainEvent(type=EventType.TIME_ENTRY_REMINDER, payload=context)
            summary.record(self.dispatcher.publish(event))
            if self.publish is not None:
                self.publish(event)

        logger.info(
            f"Reminder run complete: {summary.total} reminders, {summary.failed} not delivered",
            extra={"event": "reminders.run.complete", "statuses": summary.statuses},
        )
        return summary

    __call__ = run
