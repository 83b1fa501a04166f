"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for TLS/SSL, authentication, timeouts, and proper connection lifecycle
management.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, List, Optional

from email_validator import EmailNotValidError, validate_email

from hr_notify.config.models import ProviderConfig

from .models import DeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Handles connection lifecycle, TLS/SSL negotiation and authentication.
    Designed to be easily mockable for testing.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(self, message: EmailMessage, config: ProviderConfig) -> None:
        """Send an email message via SMTP.

        Port 465 uses implicit TLS; any other port connects in plain text
        and upgrades with STARTTLS when ``config.use_tls`` is set. Every
        network operation is bounded by ``config.timeout``.

        Args:
            message: Fully constructed EmailMessage to send
            config: Current provider settings

        Raises:
            DeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if config.port == 465:
                logger.debug(f"Connecting to {config.host}:{config.port} with implicit TLS")
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    config.host, config.port, timeout=config.timeout, context=context
                )
            else:
                logger.debug(f"Connecting to {config.host}:{config.port}")
                smtp = self.smtp_factory(config.host, config.port, timeout=config.timeout)

                if config.use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    context = ssl.create_default_context()
                    smtp.starttls(context=context)

            if config.username and config.password is not None:
                logger.debug(f"Authenticating as {config.username}")
                smtp.login(config.username, config.password.get_secret_value())
            else:
                logger.debug("No authentication credentials provided, proceeding without auth")

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPAuthenticationError as e:
            error_msg = f"SMTP authentication failed for {config.username}: {e}"
            logger.error(error_msg)
            raise DeliveryError(error_msg) from e
        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.error(error_msg)
            raise DeliveryError(error_msg) from e
        except OSError as e:
            # Includes connection refused and socket timeouts
            error_msg = f"Network error during SMTP connection to {config.host}:{config.port}: {e}"
            logger.error(error_msg)
            raise DeliveryError(error_msg) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def parse_recipients(recipients: List[str]) -> List[str]:
    """Validate and normalize recipient addresses.

    Args:
        recipients: Email addresses (blank entries are ignored)

    Returns:
        List of normalized addresses with duplicates removed

    Raises:
        ValueError: If any address is invalid or none remain
    """
    normalized: List[str] = []

    for raw in recipients:
        email = (raw or "").strip()
        if not email:
            continue

        try:
            validated = validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid recipient address: '{email}' - {e}") from e

        if validated.normalized not in normalized:
            normalized.append(validated.normalized)

    if not normalized:
        raise ValueError("No valid recipient addresses")

    return normalized
