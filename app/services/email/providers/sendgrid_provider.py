# app/services/email/providers/sendgrid_provider.py
from app.constants.campaign import EmailProvider
from app.models.email_account import EmailAccountConfig
from ..provider_interface import OutgoingEmail, SendResult
from .http_provider import HttpEmailProvider

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridProvider(HttpEmailProvider):
    """SendGrid v3 Mail Send API."""

    @property
    def code(self) -> str:
        return EmailProvider.SENDGRID

    @property
    def name(self) -> str:
        return "SendGrid"

    def is_configured(self, config: EmailAccountConfig) -> bool:
        return bool(config.sendgrid_api_key)

    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        recipient = {"email": message.to}
        if message.to_name:
            recipient["name"] = message.to_name

        sender = {"email": message.from_email}
        if message.from_name:
            sender["name"] = message.from_name

        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        content.append({"type": "text/html", "value": message.html})

        payload = {
            "personalizations": [{"to": [recipient]}],
            "from": sender,
            "subject": message.subject,
            "content": content,
        }
        headers = message.tracking_headers()
        if headers:
            payload["headers"] = headers
        if message.message_id:
            payload["custom_args"] = {"message_id": message.message_id}

        response = self._post(
            SENDGRID_SEND_URL,
            headers={"Authorization": f"Bearer {config.sendgrid_api_key}"},
            payload=payload,
            timeout=timeout,
        )
        # 202 Accepted, id comes back as a header only
        return SendResult(provider=self.code, provider_message_id=response.headers.get("X-Message-Id"))
