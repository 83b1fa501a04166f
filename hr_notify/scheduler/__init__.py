"""Scheduling of periodic time-entry reminders."""

from .reminders import ReminderJob, ReminderRunSummary
from .service import SchedulerService

__all__ = [
    "SchedulerService",
    "ReminderJob",
    "ReminderRunSummary",
]
