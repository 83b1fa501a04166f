"""Administrative operations for templates and provider settings.

Backs the settings pages of the admin UI. Reads never return credential
material; the SMTP password is write-only and omitting it on update keeps
the stored one.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from hr_notify.config.exceptions import ConfigurationError
from hr_notify.config.models import ProviderConfig
from hr_notify.logging import get_logger

from .dispatcher import NotificationDispatcher
from .models import DeliveryResult, OutboundEmail
from .providers import PreviewProvider

logger = get_logger(__name__, component="admin")

TEST_EMAIL_SUBJECT = "Test Email from Time Management System"
TEST_EMAIL_TEXT = (
    "This is a test email from the Time Management System.\n"
    "If you received this email, your email configuration is working correctly."
)


class NotificationAdmin:
    """Template and provider administration on top of a dispatcher."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher
        self.store = dispatcher.store

    def list_templates(self) -> List[Dict[str, Any]]:
        return [
            {"name": template.name, "is_custom": template.is_custom}
            for template in self.store.list()
        ]

    def get_template(self, name: str) -> Dict[str, Any]:
        template = self.store.get(name)
        return {"name": template.name, "body": template.body, "is_custom": template.is_custom}

    def save_template(self, name: str, body: str) -> Dict[str, Any]:
        template = self.store.save(name, body)
        return {"name": template.name, "body": template.body, "is_custom": template.is_custom}

    def reset_template(self, name: str) -> Dict[str, Any]:
        """Drop the custom body and return the default that is now active."""
        removed = self.store.reset_to_default(name)
        template = self.store.get(name)
        return {
            "name": template.name,
            "body": template.body,
            "is_custom": template.is_custom,
            "reset": removed,
        }

    def send_test_notification(self, event_type: str, context: Mapping[str, Any]) -> DeliveryResult:
        """Render ``event_type`` exactly as a real dispatch would, but only capture it.

        Category switches are ignored so disabled templates can still be
        previewed. Errors propagate so the admin sees what is wrong.
        """
        preview = PreviewProvider()
        result = self.dispatcher.dispatch(event_type, context, provider=preview, force=True)

        logger.info(
            f"Test notification {event_type} rendered in preview mode",
            extra={"event": "admin.test_notification", "messages": len(result.messages)},
        )
        return result

    def get_provider_settings(self) -> Dict[str, Any]:
        return self.dispatcher.provider_config.redacted()

    def update_provider_settings(self, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply ``updates`` to the current provider settings.

        A missing, None or empty ``password`` keeps the stored password.

        Returns:
            The new settings, redacted

        Raises:
            ConfigurationError: If the merged settings are invalid
        """
        current = self.dispatcher.provider_config
        merged = current.model_dump()
        merged.update({key: value for key, value in updates.items() if key != "has_password"})

        if not updates.get("password"):
            merged["password"] = current.password

        try:
            new_config = ProviderConfig(**merged)
        except ValidationError as e:
            errors = [f"{'.'.join(str(part) for part in err['loc']) or 'provider'}: {err['msg']}" for err in e.errors()]
            raise ConfigurationError("Invalid provider settings", errors=errors) from e

        self.dispatcher.update_provider_config(new_config)
        return new_config.redacted()

    def test_email_configuration(self, recipient: Optional[str] = None) -> DeliveryResult:
        """Send a plain test email through the active provider.

        Args:
            recipient: Address to send to (admin_email if omitted)

        Raises:
            ConfigurationError: If there is no recipient
            DeliveryError: If the provider fails
        """
        provider, config = self.dispatcher.active_provider()
        to = recipient or config.admin_email
        if not to:
            raise ConfigurationError(
                "No recipient for the test email",
                suggestions=["Pass a recipient or set provider.admin_email"],
            )

        email = OutboundEmail(
            recipients=[to],
            subject=TEST_EMAIL_SUBJECT,
            html_body="<p>" + TEST_EMAIL_TEXT.replace("\n", "</p><p>") + "</p>",
            text_body=TEST_EMAIL_TEXT,
            template_name="test_email",
            headers={"X-Application": f"{self.dispatcher.company.name} Time Management"},
        )
        provider.send(email, config)

        logger.info(
            f"Test email sent to {to} via {provider.kind}",
            extra={"event": "admin.test_email", "provider": provider.kind},
        )
        return DeliveryResult(
            event_type="test_email",
            status=provider.delivered_status,
            provider=provider.kind,
            messages=[email],
        )
