"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Return warnings for settings that are valid but likely unintended.

    Args:
        config_dict: Raw configuration dictionary (before validation)
    """
    warning_messages = []

    provider = config_dict.get("provider") or {}
    if isinstance(provider, dict):
        if str(provider.get("kind", "smtp")).lower() == "preview":
            warning_messages.append(
                "Provider kind is 'preview': emails are captured and never sent"
            )

        if "password" in provider:
            warning_messages.append(
                "provider.password is stored in the config file; prefer SMTP_PASS in the environment"
            )

        port = provider.get("port", 587)
        if provider.get("use_tls") is False and port != 465 and provider.get("username"):
            warning_messages.append(
                "SMTP credentials will be sent without TLS (use_tls: false)"
            )

    notifications = config_dict.get("notifications") or {}
    if isinstance(notifications, dict) and notifications.get("enable_notifications") is False:
        warning_messages.append("All email notifications are disabled")

    rate_limit = config_dict.get("rate_limit") or {}
    if isinstance(rate_limit, dict):
        max_dispatches = rate_limit.get("max_dispatches")
        if isinstance(max_dispatches, int) and max_dispatches > 10000:
            warning_messages.append(
                f"Large rate_limit.max_dispatches ({max_dispatches}) offers little abuse protection"
            )

    realtime = config_dict.get("realtime") or {}
    if isinstance(realtime, dict) and realtime.get("max_reconnect_attempts") == 0:
        warning_messages.append("Realtime clients will never reconnect (max_reconnect_attempts: 0)")

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
