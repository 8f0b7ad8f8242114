from app.constants.campaign import EmailProvider
from app.core.exceptions import DeliveryError
from app.services.email.gateway import EmailGateway
from app.services.email.provider_factory import EmailProviderFactory
from app.services.email.provider_interface import (
    EmailProviderInterface,
    OutgoingEmail,
    SendResult,
)


class FakeProvider(EmailProviderInterface):
    """
    Records every message it is asked to send.

    Addresses in ``fail_for`` raise ``error`` (a permanent DeliveryError by
    default) instead of being accepted.
    """

    def __init__(self, code=EmailProvider.SENDGRID, fail_for=(), error=None, configured=True):
        self._code = code
        self.fail_for = set(fail_for)
        self.error = error
        self.configured = configured
        self.sent = []

    @property
    def code(self) -> str:
        return self._code

    @property
    def name(self) -> str:
        return f"Fake {self._code}"

    def is_configured(self, config) -> bool:
        return self.configured

    def send(self, message: OutgoingEmail, config, timeout: float) -> SendResult:
        self.sent.append(message)
        if message.to in self.fail_for:
            raise self.error or DeliveryError(
                "Mailbox unavailable", retryable=False, provider=self._code
            )
        return SendResult(provider=self._code, provider_message_id=f"fake-{len(self.sent)}")


def make_gateway(*providers, max_attempts=3):
    """Gateway over the given providers that never really sleeps."""
    return EmailGateway(
        EmailProviderFactory(providers=list(providers)),
        max_attempts=max_attempts,
        sleep=lambda seconds: None,
    )
