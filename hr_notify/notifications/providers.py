"""Delivery providers for rendered notification emails.

A provider takes an :class:`OutboundEmail` plus the current
:class:`ProviderConfig` and hands it to a transport:

- ``smtp``: network send through :class:`SMTPClient`
- ``sendmail``: pipe the message to the local MTA binary
- ``preview``: capture the message in memory and never send
"""

import subprocess
import threading
from abc import ABC, abstractmethod
from collections import deque
from email.message import EmailMessage
from typing import Deque, Dict, List, Optional, Type

from hr_notify.config.models import ProviderConfig, ProviderKind
from hr_notify.logging import get_logger

from .models import DeliveryError, OutboundEmail
from .smtp_client import SMTPClient, parse_recipients

logger = get_logger(__name__, component="provider")

DEFAULT_MAX_CAPTURED = 100


def build_message(email: OutboundEmail, config: ProviderConfig) -> EmailMessage:
    """Assemble a multipart (text + HTML) message for ``email``.

    Raises:
        DeliveryError: If a recipient address is invalid
    """
    try:
        recipients = parse_recipients(email.recipients)
        bcc = parse_recipients(email.bcc) if email.bcc else []
    except ValueError as e:
        raise DeliveryError(f"Cannot address message: {e}") from e

    message = EmailMessage()
    message["Subject"] = email.subject
    message["From"] = config.sender
    message["To"] = ", ".join(recipients)
    if bcc:
        message["Bcc"] = ", ".join(bcc)
    for header, value in email.headers.items():
        message[header] = value

    message.set_content(email.text_body)
    message.add_alternative(email.html_body, subtype="html")

    return message


class DeliveryProvider(ABC):
    """Base class for outbound transports.

    Attributes:
        kind: Provider kind this class implements
        delivered_status: Status reported for a successful handoff
    """

    kind: str = ""
    delivered_status: str = "sent"

    @abstractmethod
    def send(self, email: OutboundEmail, config: ProviderConfig) -> None:
        """Deliver ``email`` using ``config``.

        Raises:
            DeliveryError: On connection, authentication or timeout failures
        """
        raise NotImplementedError


class SMTPProvider(DeliveryProvider):
    kind = ProviderKind.SMTP.value

    def __init__(self, smtp_client: Optional[SMTPClient] = None):
        self.smtp_client = smtp_client or SMTPClient()

    def send(self, email: OutboundEmail, config: ProviderConfig) -> None:
        message = build_message(email, config)
        self.smtp_client.send(message, config)


class SendmailProvider(DeliveryProvider):
    """Hands the message to the local MTA (``sendmail -t -i``)."""

    kind = ProviderKind.SENDMAIL.value

    def __init__(self, run=None):
        self._run = run or subprocess.run

    def send(self, email: OutboundEmail, config: ProviderConfig) -> None:
        message = build_message(email, config)
        command = [config.sendmail_path, "-t", "-i"]

        logger.debug(f"Piping message to {config.sendmail_path}")
        try:
            completed = self._run(
                command,
                input=message.as_bytes(),
                capture_output=True,
                timeout=config.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DeliveryError(f"sendmail timed out after {config.timeout}s") from e
        except OSError as e:
            raise DeliveryError(f"Failed to run {config.sendmail_path}: {e}") from e

        if completed.returncode != 0:
            stderr = (completed.stderr or b"").decode("utf-8", errors="replace").strip()
            raise DeliveryError(f"sendmail exited with status {completed.returncode}: {stderr}")


class PreviewProvider(DeliveryProvider):
    """Captures rendered emails instead of sending them. Never fails.

    Only the most recent ``max_captured`` emails are kept.
    """

    kind = ProviderKind.PREVIEW.value
    delivered_status = "previewed"

    def __init__(self, max_captured: int = DEFAULT_MAX_CAPTURED):
        self._captured: Deque[OutboundEmail] = deque(maxlen=max_captured)
        self._lock = threading.Lock()

    def send(self, email: OutboundEmail, config: ProviderConfig) -> None:
        with self._lock:
            self._captured.append(email)
        logger.info(
            f"Captured preview of {email.template_name} for {', '.join(email.recipients)}",
            extra={"event": "notification.preview", "template": email.template_name},
        )

    @property
    def captured(self) -> List[OutboundEmail]:
        with self._lock:
            return list(self._captured)

    @property
    def last(self) -> Optional[OutboundEmail]:
        with self._lock:
            return self._captured[-1] if self._captured else None

    def clear(self) -> None:
        with self._lock:
            self._captured.clear()


PROVIDER_CLASSES: Dict[str, Type[DeliveryProvider]] = {
    ProviderKind.SMTP.value: SMTPProvider,
    ProviderKind.SENDMAIL.value: SendmailProvider,
    ProviderKind.PREVIEW.value: PreviewProvider,
}


def get_provider(config: ProviderConfig) -> DeliveryProvider:
    """Instantiate the provider for ``config.kind``.

    Raises:
        DeliveryError: If the kind is not supported
    """
    kind = config.kind.value if isinstance(config.kind, ProviderKind) else str(config.kind).lower()
    provider_class = PROVIDER_CLASSES.get(kind)

    if provider_class is None:
        supported = ", ".join(sorted(PROVIDER_CLASSES))
        raise DeliveryError(f"Unknown provider kind: {config.kind}. Supported kinds: {supported}")

    logger.debug(
        "Creating delivery provider",
        extra={"provider": kind, "provider_class": provider_class.__name__},
    )
    return provider_class()
