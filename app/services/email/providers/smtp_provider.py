# app/services/email/providers/smtp_provider.py
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

from app.constants.campaign import EmailProvider
from app.core.exceptions import DeliveryError, EmailAuthError
from app.models.email_account import EmailAccountConfig
from ..provider_interface import EmailProviderInterface, OutgoingEmail, SendResult

logger = logging.getLogger(__name__)

SMTP_SSL_PORT = 465
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587


def build_mime_message(message: OutgoingEmail) -> MIMEMultipart:
    """multipart/alternative MIME message with text and HTML parts."""
    mime = MIMEMultipart("alternative")
    mime["Subject"] = message.subject
    mime["From"] = message.sender
    mime["To"] = formataddr((message.to_name or "", message.to))
    mime["Message-ID"] = make_msgid(domain=message.from_email.split("@")[-1])
    for header, value in message.tracking_headers().items():
        mime[header] = value

    if message.text:
        mime.attach(MIMEText(message.text, "plain", "utf-8"))
    mime.attach(MIMEText(message.html, "html", "utf-8"))
    return mime


class SmtpProvider(EmailProviderInterface):
    """Plain SMTP submission with STARTTLS (or implicit TLS on port 465)."""

    @property
    def code(self) -> str:
        return EmailProvider.SMTP

    @property
    def name(self) -> str:
        return "SMTP"

    def is_configured(self, config: EmailAccountConfig) -> bool:
        return bool(config.smtp_username and config.smtp_password)

    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        mime = build_mime_message(message)
        host = config.smtp_host or DEFAULT_SMTP_HOST
        port = config.smtp_port or DEFAULT_SMTP_PORT
        smtp_class = smtplib.SMTP_SSL if port == SMTP_SSL_PORT else smtplib.SMTP
        try:
            with smtp_class(host, port, timeout=timeout) as server:
                if port != SMTP_SSL_PORT:
                    server.starttls()
                server.login(config.smtp_username, config.smtp_password)
                server.sendmail(message.from_email, [message.to], mime.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise EmailAuthError(f"SMTP authentication failed: {e}", provider=self.code)
        except smtplib.SMTPRecipientsRefused as e:
            raise DeliveryError(f"SMTP recipient refused: {e}", retryable=False, provider=self.code)
        except (smtplib.SMTPException, OSError) as e:
            # OSError covers connection refusals and socket timeouts
            raise DeliveryError(f"SMTP error: {e}", provider=self.code)

        logger.debug(f"SMTP accepted message for {message.to}")
        return SendResult(provider=self.code, provider_message_id=mime["Message-ID"])
