# app/services/email/providers/gmail_provider.py
import base64

from app.constants.campaign import EmailProvider
from app.models.email_account import EmailAccountConfig
from ..provider_interface import OutgoingEmail, SendResult
from .http_provider import HttpEmailProvider
from .smtp_provider import build_mime_message

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


class GmailApiProvider(HttpEmailProvider):
    """
    Gmail REST API using the OAuth access token stored on the account.

    Token refresh is owned by the login flow; an expired token surfaces
    as EmailAuthError.
    """

    @property
    def code(self) -> str:
        return EmailProvider.GMAIL_API

    @property
    def name(self) -> str:
        return "Gmail API"

    def is_configured(self, config: EmailAccountConfig) -> bool:
        return bool(config.google_access_token)

    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        mime = build_mime_message(message)
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii")

        response = self._post(
            GMAIL_SEND_URL,
            headers={"Authorization": f"Bearer {config.google_access_token}"},
            payload={"raw": raw},
            timeout=timeout,
        )
        return SendResult(provider=self.code, provider_message_id=response.json().get("id"))
