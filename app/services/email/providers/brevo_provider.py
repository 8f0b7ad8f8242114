# app/services/email/providers/brevo_provider.py
from app.constants.campaign import EmailProvider
from app.models.email_account import EmailAccountConfig
from ..provider_interface import OutgoingEmail, SendResult
from .http_provider import HttpEmailProvider

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"


class BrevoProvider(HttpEmailProvider):
    """Brevo (formerly Sendinblue) transactional email API."""

    @property
    def code(self) -> str:
        return EmailProvider.BREVO

    @property
    def name(self) -> str:
        return "Brevo"

    def is_configured(self, config: EmailAccountConfig) -> bool:
        return bool(config.brevo_api_key)

    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        recipient = {"email": message.to}
        if message.to_name:
            recipient["name"] = message.to_name

        payload = {
            "sender": {"email": message.from_email, "name": message.from_name or message.from_email},
            "to": [recipient],
            "subject": message.subject,
            "htmlContent": message.html,
        }
        if message.text:
            payload["textContent"] = message.text
        headers = message.tracking_headers()
        if headers:
            payload["headers"] = headers

        response = self._post(
            BREVO_SEND_URL,
            headers={"api-key": config.brevo_api_key, "accept": "application/json"},
            payload=payload,
            timeout=timeout,
        )
        return SendResult(provider=self.code, provider_message_id=response.json().get("messageId"))
