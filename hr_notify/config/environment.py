"""Environment variable loading and validation.

Provider credentials are normally supplied through the environment (or a
``.env`` file) rather than committed to ``config.yaml``. Values found here
override the YAML ``provider`` section.
"""

import os
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError
from .models import LogLevel, ProviderConfig, ProviderKind

# Environment variable -> ProviderConfig field
PROVIDER_ENV_VARS = {
    "EMAIL_PROVIDER": "kind",
    "SMTP_HOST": "host",
    "SMTP_PORT": "port",
    "SMTP_USER": "username",
    "SMTP_PASS": "password",
    "EMAIL_FROM": "from_address",
    "EMAIL_FROM_NAME": "from_name",
    "ADMIN_EMAIL": "admin_email",
}


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        provider_overrides: Optional[Dict[str, Any]] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.provider_overrides = provider_overrides or {}
        self.log_level = log_level
        self.database_url = database_url or "sqlite:///./data/hr_notify.db"
        self.environment = environment or "local"

    def apply_to(self, provider: ProviderConfig) -> ProviderConfig:
        """Return ``provider`` with environment overrides merged in."""
        if not self.provider_overrides:
            return provider

        data = provider.model_dump()
        data.update(self.provider_overrides)
        return ProviderConfig.model_validate(data)


def load_environment_config() -> EnvironmentConfig:
    """
    Read and validate environment variables.

    Optional variables:
    - EMAIL_PROVIDER: smtp, sendmail or preview
    - SMTP_HOST / SMTP_PORT: SMTP server (port 1-65535)
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - EMAIL_FROM / EMAIL_FROM_NAME: sender address and display name
    - ADMIN_EMAIL: address used for admin BCC
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
    - DATABASE_URL: SQLAlchemy URL for custom template storage
    - ENVIRONMENT: label attached to log records

    Raises:
        ConfigurationError: If any variable is present but invalid
    """
    errors = []
    overrides: Dict[str, Any] = {}

    for var, field in PROVIDER_ENV_VARS.items():
        value = os.getenv(var)
        if value:
            overrides[field] = value

    kind = overrides.get("kind")
    if kind is not None:
        valid_kinds = [k.value for k in ProviderKind]
        if kind.lower() not in valid_kinds:
            errors.append(
                f"Invalid EMAIL_PROVIDER: '{kind}'. Must be one of: {', '.join(valid_kinds)}"
            )
        else:
            overrides["kind"] = kind.lower()

    port = overrides.get("port")
    if port is not None:
        try:
            overrides["port"] = int(port)
            if not 1 <= overrides["port"] <= 65535:
                errors.append(f"Invalid SMTP_PORT: {port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{port}'. Must be a valid integer.")

    for var, field in (("EMAIL_FROM", "from_address"), ("ADMIN_EMAIL", "admin_email")):
        if field in overrides:
            try:
                validate_email(overrides[field], check_deliverability=False)
            except EmailNotValidError as e:
                errors.append(f"Invalid email address in {var}: '{overrides[field]}' - {e}")

    if "username" in overrides and "password" not in overrides:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif "password" in overrides and "username" not in overrides:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    log_level = os.getenv("LOG_LEVEL")
    if log_level:
        valid_levels = [level.value for level in LogLevel]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )
        else:
            log_level = log_level.upper()

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Check that email addresses are valid",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        provider_overrides=overrides,
        log_level=log_level,
        database_url=os.getenv("DATABASE_URL"),
        environment=os.getenv("ENVIRONMENT"),
    )
