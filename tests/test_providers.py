"""Tests for delivery providers and the SMTP client."""

import smtplib
import subprocess
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from hr_notify.config.models import ProviderConfig
from hr_notify.notifications.models import DeliveryError, OutboundEmail
from hr_notify.notifications.providers import (
    PreviewProvider,
    SendmailProvider,
    SMTPProvider,
    build_message,
    get_provider,
)
from hr_notify.notifications.smtp_client import SMTPClient, parse_recipients


@pytest.fixture
def email():
    return OutboundEmail(
        recipients=["anna.berger@example.com"],
        subject="Your Leave Request Has Been Approved",
        html_body="<p>Approved</p>",
        text_body="Approved",
        template_name="leave_request_approved",
        headers={"X-Template": "leave_request_approved"},
    )


@pytest.fixture
def smtp_config():
    return ProviderConfig(
        host="smtp.example.com",
        port=587,
        username="mailer",
        password="s3cret",
        timeout=12.5,
        from_address="hr@example.com",
    )


@pytest.fixture
def mock_smtp():
    """Mock SMTP instance and factory."""
    instance = MagicMock()
    factory = MagicMock(return_value=instance)
    return factory, instance


class TestSMTPClient:
    """Test the smtplib wrapper."""

    def test_starttls_and_login(self, mock_smtp, smtp_config, email):
        factory, instance = mock_smtp
        client = SMTPClient(smtp_factory=factory)
        message = build_message(email, smtp_config)

        client.send(message, smtp_config)

        factory.assert_called_once_with("smtp.example.com", 587, timeout=12.5)
        instance.starttls.assert_called_once()
        instance.login.assert_called_once_with("mailer", "s3cret")
        instance.send_message.assert_called_once_with(message)
        instance.quit.assert_called_once()

    def test_implicit_tls_on_465(self, mock_smtp, email):
        factory, instance = mock_smtp
        client = SMTPClient(smtp_factory=MagicMock(), smtp_ssl_factory=factory)
        config = ProviderConfig(host="smtp.example.com", port=465, from_address="hr@example.com")

        client.send(build_message(email, config), config)

        args, kwargs = factory.call_args
        assert args == ("smtp.example.com", 465)
        assert kwargs["timeout"] == 30.0
        assert "context" in kwargs
        instance.starttls.assert_not_called()
        instance.login.assert_not_called()

    def test_no_tls(self, mock_smtp, email):
        factory, instance = mock_smtp
        config = ProviderConfig(port=25, use_tls=False)

        SMTPClient(smtp_factory=factory).send(build_message(email, config), config)

        instance.starttls.assert_not_called()

    def test_auth_failure(self, mock_smtp, smtp_config, email):
        factory, instance = mock_smtp
        instance.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        with pytest.raises(DeliveryError, match="authentication failed"):
            SMTPClient(smtp_factory=factory).send(build_message(email, smtp_config), smtp_config)

        instance.send_message.assert_not_called()
        instance.quit.assert_called_once()

    def test_connection_refused(self, smtp_config, email):
        factory = MagicMock(side_effect=ConnectionRefusedError("refused"))

        with pytest.raises(DeliveryError, match="Network error"):
            SMTPClient(smtp_factory=factory).send(build_message(email, smtp_config), smtp_config)

    def test_timeout(self, mock_smtp, smtp_config, email):
        factory, instance = mock_smtp
        instance.send_message.side_effect = TimeoutError("timed out")

        with pytest.raises(DeliveryError):
            SMTPClient(smtp_factory=factory).send(build_message(email, smtp_config), smtp_config)

    def test_quit_failure_ignored(self, mock_smtp, smtp_config, email):
        factory, instance = mock_smtp
        instance.quit.side_effect = smtplib.SMTPServerDisconnected("gone")

        SMTPClient(smtp_factory=factory).send(build_message(email, smtp_config), smtp_config)

        instance.send_message.assert_called_once()


class TestParseRecipients:
    def test_normalizes_and_dedupes(self):
        result = parse_recipients(["anna@example.com", " anna@example.com ", "", "markus@example.com"])
        assert result == ["anna@example.com", "markus@example.com"]

    def test_invalid_address(self):
        with pytest.raises(ValueError, match="Invalid recipient"):
            parse_recipients(["not an address"])

    def test_nothing_left(self):
        with pytest.raises(ValueError, match="No valid recipient"):
            parse_recipients(["", "  "])


class TestBuildMessage:
    def test_headers_and_parts(self, email):
        config = ProviderConfig(from_address="hr@example.com", from_name="Personalabteilung")
        message = build_message(email, config)

        assert message["Subject"] == "Your Leave Request Has Been Approved"
        assert message["From"] == '"Personalabteilung" <hr@example.com>'
        assert message["To"] == "anna.berger@example.com"
        assert message["X-Template"] == "leave_request_approved"
        assert message["Bcc"] is None
        assert message.get_body(preferencelist=("plain",)).get_content().strip() == "Approved"
        assert message.get_body(preferencelist=("html",)).get_content().strip() == "<p>Approved</p>"

    def test_bcc(self):
        email = OutboundEmail(
            recipients=["anna@example.com"],
            subject="S",
            html_body="<p>x</p>",
            text_body="x",
            template_name="t",
            bcc=["admin@example.com"],
        )
        message = build_message(email, ProviderConfig())

        assert message["Bcc"] == "admin@example.com"

    def test_bad_recipient(self):
        email = OutboundEmail(
            recipients=["nope"], subject="S", html_body="", text_body="", template_name="t"
        )

        with pytest.raises(DeliveryError, match="Cannot address"):
            build_message(email, ProviderConfig())


class TestSMTPProvider:
    def test_send_uses_client(self, email, smtp_config):
        client = MagicMock()
        SMTPProvider(smtp_client=client).send(email, smtp_config)

        message, config = client.send.call_args[0]
        assert message["To"] == "anna.berger@example.com"
        assert config is smtp_config


class TestSendmailProvider:
    """Test the sendmail pipe."""

    def test_pipes_message(self, email):
        run = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=0, stderr=b""))
        config = ProviderConfig(kind="sendmail", sendmail_path="/usr/lib/sendmail", timeout=5)

        SendmailProvider(run=run).send(email, config)

        args, kwargs = run.call_args
        assert args[0] == ["/usr/lib/sendmail", "-t", "-i"]
        assert kwargs["timeout"] == 5
        assert b"Subject: Your Leave Request Has Been Approved" in kwargs["input"]

    def test_nonzero_exit(self, email):
        run = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=75, stderr=b"queue full"))

        with pytest.raises(DeliveryError, match="status 75: queue full"):
            SendmailProvider(run=run).send(email, ProviderConfig(kind="sendmail"))

    def test_timeout(self, email):
        run = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="sendmail", timeout=30))

        with pytest.raises(DeliveryError, match="timed out"):
            SendmailProvider(run=run).send(email, ProviderConfig(kind="sendmail"))

    def test_missing_binary(self, email):
        run = MagicMock(side_effect=FileNotFoundError("no such file"))

        with pytest.raises(DeliveryError, match="Failed to run"):
            SendmailProvider(run=run).send(email, ProviderConfig(kind="sendmail"))


class TestPreviewProvider:
    def test_captures(self, email):
        provider = PreviewProvider()

        provider.send(email, ProviderConfig(kind="preview"))

        assert provider.captured == [email]
        assert provider.last is email
        assert provider.delivered_status == "previewed"

        provider.clear()
        assert provider.last is None

    def test_keeps_only_recent_emails(self, email):
        provider = PreviewProvider(max_captured=3)
        emails = [replace(email, subject=f"Mail {i}") for i in range(5)]

        for item in emails:
            provider.send(item, ProviderConfig(kind="preview"))

        assert provider.captured == emails[2:]
        assert provider.last is emails[-1]


class TestGetProvider:
    @pytest.mark.parametrize(
        "kind,expected",
        [("smtp", SMTPProvider), ("sendmail", SendmailProvider), ("preview", PreviewProvider)],
    )
    def test_kinds(self, kind, expected):
        assert isinstance(get_provider(ProviderConfig(kind=kind)), expected)

    def test_unknown_kind(self):
        config = ProviderConfig.model_construct(kind="fax")

        with pytest.raises(DeliveryError, match="Unknown provider kind"):
            get_provider(config)
