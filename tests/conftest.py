"""Shared fixtures for notification pipeline tests."""

import copy

import pytest

from hr_notify.config.models import CompanyConfig, NotificationSettings, ProviderConfig
from hr_notify.logging.context import clear_log_context
from hr_notify.notifications.dispatcher import NotificationDispatcher
from hr_notify.notifications.providers import PreviewProvider
from hr_notify.notifications.store import InMemoryOverrideStore, TemplateStore
from hr_notify.notifications.templates import TemplateRenderer

EMPLOYEE = {"name": "Anna Berger", "email": "anna.berger@example.com", "department": "Engineering"}
MANAGER = {"name": "Markus Huber", "email": "markus.huber@example.com"}
LEAVE_REQUEST = {
    "type": "Vacation",
    "startDate": "2025-05-01",
    "endDate": "2025-05-09",
    "notes": "Family trip",
}

# One fully populated context per registered event type
FULL_CONTEXTS = {
    "leave_request_created": {
        "employee": EMPLOYEE,
        "manager": MANAGER,
        "leaveRequest": LEAVE_REQUEST,
    },
    "leave_request_created_confirmation": {
        "employee": EMPLOYEE,
        "manager": MANAGER,
        "leaveRequest": LEAVE_REQUEST,
    },
    "leave_request_approved": {
        "employee": EMPLOYEE,
        "manager": MANAGER,
        "leaveRequest": LEAVE_REQUEST,
    },
    "leave_request_denied": {
        "employee": EMPLOYEE,
        "manager": MANAGER,
        "leaveRequest": LEAVE_REQUEST,
        "reason": "Team coverage too low",
    },
    "leave_request_cancelled": {
        "employee": EMPLOYEE,
        "manager": MANAGER,
        "leaveRequest": LEAVE_REQUEST,
        "cancelledBy": "Anna Berger",
    },
    "time_entry_reminder": {
        "employee": EMPLOYEE,
        "missingEntries": ["28.04.2025", "29.04.2025"],
        "date": "2025-04-30",
    },
    "time_entry_approved": {
        "employee": EMPLOYEE,
        "timeEntry": {
            "date": "2025-04-28",
            "startTime": "08:00",
            "endTime": "16:30",
            "breakDuration": 30,
            "project": "Payroll Migration",
        },
        "approvedBy": "Markus Huber",
    },
    "monthly_report": {
        "employee": EMPLOYEE,
        "month": 4,
        "year": 2025,
        "report": {
            "totalDays": 30,
            "workingDays": 21,
            "totalHours": 168.5,
            "overtimeHours": 4.5,
            "leaveDays": 2,
        },
        "reportUrl": "https://hr.example.com/reports/2025-04",
    },
    "password_reset": {
        "user": {"name": "Anna Berger", "email": "anna.berger@example.com"},
        "resetUrl": "https://hr.example.com/reset?token=abc",
    },
    "account_created": {
        "user": {"name": "Anna Berger", "email": "anna.berger@example.com"},
        "initialPassword": "Welcome-2025",
        "loginUrl": "https://hr.example.com/login",
    },
}


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def full_contexts():
    """Deep copy of a fully populated context for every event type."""
    return copy.deepcopy(FULL_CONTEXTS)


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def overrides():
    return InMemoryOverrideStore()


@pytest.fixture
def store(renderer, overrides):
    return TemplateStore(renderer=renderer, overrides=overrides)


@pytest.fixture
def preview_config():
    return ProviderConfig(kind="preview", from_address="hr@example.com")


@pytest.fixture
def preview_provider():
    return PreviewProvider()


@pytest.fixture
def company():
    return CompanyConfig(
        name="Schwarzenberg Tech",
        address="Hauptstraße 1, 1010 Wien",
        website="https://schwarzenberg.example.com",
    )


@pytest.fixture
def dispatcher(store, preview_config, preview_provider, company):
    """Dispatcher wired to an in-memory preview provider, no rate limit."""
    return NotificationDispatcher(
        store=store,
        provider_config=preview_config,
        settings=NotificationSettings(),
        company=company,
        provider=preview_provider,
    )
