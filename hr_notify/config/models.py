"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class ProviderKind(str, Enum):
    """Supported outbound email transports."""

    SMTP = "smtp"
    SENDMAIL = "sendmail"
    PREVIEW = "preview"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


NOTIFICATION_CATEGORIES = ("leave_request", "time_entry", "monthly_report", "system_notice")


def _normalize_address(value: str, field_name: str) -> str:
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address for {field_name}: '{value}' - {e}") from e


class ProviderConfig(BaseModel):
    """Delivery provider settings.

    Process-wide and replaceable at runtime through the admin surface; the
    dispatcher reads the current instance on every send. ``password`` is
    write-only: use :meth:`redacted` for anything that leaves the process.
    """

    kind: ProviderKind = Field(ProviderKind.SMTP, description="smtp, sendmail or preview")
    host: str = Field("localhost", min_length=1, description="SMTP server hostname")
    port: int = Field(587, ge=1, le=65535, description="SMTP server port")
    username: Optional[str] = Field(None, description="SMTP login (optional)")
    password: Optional[SecretStr] = Field(None, description="SMTP password (write-only)")
    use_tls: bool = Field(True, description="STARTTLS on non-465 ports")
    timeout: float = Field(30.0, gt=0, le=300, description="Per-send network timeout (seconds)")
    from_address: str = Field("timemanagement@example.com", description="Sender address")
    from_name: str = Field("Time Management System", description="Sender display name")
    sendmail_path: str = Field("/usr/sbin/sendmail", min_length=1)
    bcc_admin: bool = Field(False, description="Blind-copy every email to admin_email")
    admin_email: Optional[str] = None

    model_config = {"use_enum_values": True}

    @field_validator("from_address")
    @classmethod
    def validate_from_address(cls, v: str) -> str:
        return _normalize_address(v, "from_address")

    @field_validator("admin_email")
    @classmethod
    def validate_admin_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _normalize_address(v, "admin_email")

    @field_validator("username")
    @classmethod
    def blank_username_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def validate_consistency(self):
        if self.password is not None and not self.username:
            raise ValueError("password is set but username is not. Both must be set for authentication.")
        if self.bcc_admin and not self.admin_email:
            raise ValueError("bcc_admin requires admin_email")
        return self

    @property
    def sender(self) -> str:
        """Formatted From header, e.g. ``"Time Management System" <hr@example.com>``."""
        name = self.from_name.replace('"', "'")
        return f'"{name}" <{self.from_address}>'

    def redacted(self) -> Dict[str, Any]:
        """Return a dict safe for read responses (no credential material)."""
        data = self.model_dump(exclude={"password"})
        data["has_password"] = self.password is not None
        return data


class NotificationSettings(BaseModel):
    """Global and per-category switches for outbound email."""

    enable_notifications: bool = True
    categories: Dict[str, bool] = Field(
        default_factory=lambda: {name: True for name in NOTIFICATION_CATEGORIES}
    )
    date_format: str = Field("%d.%m.%Y", min_length=1, description="strftime format for dates")

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: Dict[str, bool]) -> Dict[str, bool]:
        unknown = sorted(set(v) - set(NOTIFICATION_CATEGORIES))
        if unknown:
            raise ValueError(
                f"Unknown notification categories: {', '.join(unknown)}. "
                f"Valid: {', '.join(NOTIFICATION_CATEGORIES)}"
            )
        # Categories not mentioned stay enabled
        return {name: v.get(name, True) for name in NOTIFICATION_CATEGORIES}

    def is_enabled(self, category: Optional[str]) -> bool:
        if not self.enable_notifications:
            return False
        if category is None:
            return True
        return self.categories.get(category, True)


class RateLimitConfig(BaseModel):
    """Sliding-window limit on dispatch calls."""

    max_dispatches: int = Field(1000, ge=1, description="Dispatches allowed per window")
    window: str = Field("1d", description="Window length, e.g. '1m', 'PT1H', '1d'")

    window_seconds: Optional[int] = None

    @field_validator("window")
    @classmethod
    def validate_window(cls, v: str) -> str:
        try:
            validate_duration_range(parse_duration(v), 1, 7 * 86400, label="Rate limit window")
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_window_seconds(self):
        self.window_seconds = parse_duration(self.window)
        return self


class RealtimeConfig(BaseModel):
    """Channel server and client connection settings."""

    host: str = Field("0.0.0.0", min_length=1)
    port: int = Field(5000, ge=1, le=65535)
    path: str = Field("/ws", description="Websocket endpoint path")
    outbound_queue_size: int = Field(100, ge=1, le=10000, description="Frames buffered per client")
    heartbeat: float = Field(30.0, gt=0, description="Websocket ping interval (seconds)")
    max_reconnect_attempts: int = Field(5, ge=0, le=100)
    reconnect_delay_ms: int = Field(3000, ge=0, le=600000)
    show_notification_alerts: bool = Field(True, description="Toast on each new notification")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v


class CompanyConfig(BaseModel):
    """Company block merged into every email render context."""

    name: str = Field("Schwarzenberg Tech", min_length=1)
    address: str = ""
    website: str = ""
    logo_url: str = ""


class ReminderConfig(BaseModel):
    """Periodic time-entry reminder job."""

    enabled: bool = False
    interval: str = Field("1d", description="How often to look for missing time entries")

    interval_seconds: Optional[int] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        try:
            validate_duration_range(parse_duration(v), 300, 7 * 86400, label="Reminder interval")
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_interval_seconds(self):
        self.interval_seconds = parse_duration(self.interval)
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="json or key-value")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification service."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    company: CompanyConfig = Field(default_factory=CompanyConfig)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
