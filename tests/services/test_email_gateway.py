import smtplib
from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.constants.campaign import EmailProvider
from app.core.exceptions import ConfigurationRequiredError, DeliveryError, EmailAuthError
from app.models.email_account import EmailAccountConfig
from app.services.email.gateway import is_valid_email
from app.services.email.provider_factory import EmailProviderFactory
from app.services.email.provider_interface import OutgoingEmail
from app.services.email.providers.sendgrid_provider import SendGridProvider
from app.services.email.providers.smtp_provider import SmtpProvider

from tests.utils.email import FakeProvider, make_gateway


def _account(**fields):
    fields.setdefault("from_email", "news@example.com")
    return EmailAccountConfig(owner_id="org_abc", **fields)


def _message(to="ravi@example.com"):
    return OutgoingEmail(
        to=to, subject="Hi Ravi", html="<p>Hi</p>", from_email="news@example.com", message_id="msg_1"
    )


class FlakyProvider(FakeProvider):
    """Fails with a retryable error a fixed number of times, then succeeds."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    def send(self, message, config, timeout):
        if self.failures:
            self.failures -= 1
            self.sent.append(message)
            raise DeliveryError("Temporary outage", provider=self.code)
        return super().send(message, config, timeout)


def test_retryable_failure_is_retried_until_success():
    provider = FlakyProvider(failures=2)
    gateway = make_gateway(provider, max_attempts=3)

    result = gateway.send(_message(), _account())

    assert result.attempts == 3
    assert len(provider.sent) == 3


def test_gives_up_after_max_attempts():
    provider = FlakyProvider(failures=10)
    gateway = make_gateway(provider, max_attempts=3)

    with pytest.raises(DeliveryError) as exc_info:
        gateway.send(_message(), _account())

    assert exc_info.value.attempts == 3
    assert exc_info.value.provider == EmailProvider.SENDGRID


def test_auth_errors_are_not_retried():
    provider = FakeProvider(
        fail_for={"ravi@example.com"}, error=EmailAuthError("bad key", provider="sendgrid")
    )
    gateway = make_gateway(provider)

    with pytest.raises(EmailAuthError) as exc_info:
        gateway.send(_message(), _account())

    assert exc_info.value.attempts == 1
    assert len(provider.sent) == 1


def test_unexpected_exceptions_become_delivery_errors():
    provider = FakeProvider(fail_for={"ravi@example.com"}, error=RuntimeError("boom"))
    gateway = make_gateway(provider)

    with pytest.raises(DeliveryError) as exc_info:
        gateway.send(_message(), _account())

    assert "boom" in exc_info.value.message
    assert exc_info.value.attempts == 3


def test_invalid_address_is_rejected_without_a_call():
    provider = FakeProvider()
    gateway = make_gateway(provider)

    with pytest.raises(DeliveryError) as exc_info:
        gateway.send(_message(to="not-an-email"), _account())

    assert exc_info.value.retryable is False
    assert provider.sent == []


def test_email_validation():
    assert is_valid_email("ravi@example.com")
    assert not is_valid_email("ravi@example")
    assert not is_valid_email("ravi example@x.com")
    assert not is_valid_email(None)


def test_factory_prefers_configured_preference():
    factory = EmailProviderFactory()
    account = _account(provider="smtp", smtp_username="u", smtp_password="p", resend_api_key="re_x")

    assert factory.resolve(account).code == EmailProvider.SMTP


def test_factory_falls_back_in_priority_order():
    factory = EmailProviderFactory()
    account = _account(provider="brevo", sendgrid_api_key="SG.x", smtp_username="u", smtp_password="p")

    assert factory.usable_providers(account) == [EmailProvider.SENDGRID, EmailProvider.SMTP]
    assert factory.resolve(account).code == EmailProvider.SENDGRID


def test_factory_without_credentials_requires_configuration():
    factory = EmailProviderFactory()

    with pytest.raises(ConfigurationRequiredError):
        factory.resolve(_account())
    with pytest.raises(ConfigurationRequiredError):
        factory.resolve(None)


def _http_response(status_code, json_body=None, headers=None):
    return httpx.Response(
        status_code,
        json=json_body if json_body is not None else {},
        headers=headers,
        request=httpx.Request("POST", "https://api.sendgrid.com/v3/mail/send"),
    )


def test_sendgrid_status_mapping():
    provider = SendGridProvider()
    account = _account(sendgrid_api_key="SG.x")

    with patch("httpx.Client") as mock_client_cls:
        client = MagicMock()
        mock_client_cls.return_value.__enter__.return_value = client

        client.post.return_value = _http_response(202, headers={"X-Message-Id": "sg-123"})
        result = provider.send(_message(), account, timeout=5)
        assert result.provider_message_id == "sg-123"
        payload = client.post.call_args.kwargs["json"]
        assert payload["headers"]["X-Campaign-Message-Id"] == "msg_1"

        client.post.return_value = _http_response(401, {"errors": "bad key"})
        with pytest.raises(EmailAuthError):
            provider.send(_message(), account, timeout=5)

        client.post.return_value = _http_response(503, {"message": "down"})
        with pytest.raises(DeliveryError) as exc_info:
            provider.send(_message(), account, timeout=5)
        assert exc_info.value.retryable is True

        client.post.return_value = _http_response(400, {"message": "bad request"})
        with pytest.raises(DeliveryError) as exc_info:
            provider.send(_message(), account, timeout=5)
        assert exc_info.value.retryable is False


def test_http_timeout_is_a_retryable_delivery_error():
    provider = SendGridProvider()
    account = _account(sendgrid_api_key="SG.x")

    with patch("httpx.Client") as mock_client_cls:
        client = MagicMock()
        mock_client_cls.return_value.__enter__.return_value = client
        client.post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(DeliveryError) as exc_info:
            provider.send(_message(), account, timeout=5)

        assert exc_info.value.retryable is True
        assert "timed out after 5s" in exc_info.value.message

        with pytest.raises(DeliveryError) as exc_info:
            make_gateway(provider).send(_message(), account)
        assert exc_info.value.attempts == 3


def _smtp_account(**fields):
    return _account(smtp_username="u", smtp_password="p", **fields)


def test_smtp_sends_over_starttls():
    with patch("smtplib.SMTP") as mock_smtp_cls:
        server = mock_smtp_cls.return_value.__enter__.return_value

        result = SmtpProvider().send(_message(), _smtp_account(), timeout=5)

    mock_smtp_cls.assert_called_once_with("smtp.gmail.com", 587, timeout=5)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("u", "p")
    assert server.sendmail.call_args.args[1] == ["ravi@example.com"]
    assert result.provider == EmailProvider.SMTP
    mock_smtp_cls.return_value.__exit__.assert_called_once()


def test_smtp_starttls_failure_closes_the_connection():
    with patch("smtplib.SMTP") as mock_smtp_cls:
        server = mock_smtp_cls.return_value.__enter__.return_value
        server.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS extension not supported")

        with pytest.raises(DeliveryError) as exc_info:
            SmtpProvider().send(_message(), _smtp_account(), timeout=5)

    assert exc_info.value.retryable is True
    server.login.assert_not_called()
    mock_smtp_cls.return_value.__exit__.assert_called_once()


def test_smtp_bad_credentials_are_auth_errors():
    with patch("smtplib.SMTP_SSL") as mock_smtp_cls:
        server = mock_smtp_cls.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"Bad credentials")

        with pytest.raises(EmailAuthError):
            SmtpProvider().send(_message(), _smtp_account(smtp_host="smtp.example.com", smtp_port=465), timeout=5)

    mock_smtp_cls.assert_called_once_with("smtp.example.com", 465, timeout=5)
    mock_smtp_cls.return_value.__exit__.assert_called_once()
