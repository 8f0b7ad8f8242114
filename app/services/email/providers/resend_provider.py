# app/services/email/providers/resend_provider.py
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

import resend
from resend import exceptions as resend_exceptions

from app.constants.campaign import EmailProvider
from app.core.exceptions import DeliveryError, EmailAuthError
from app.models.email_account import EmailAccountConfig
from ..provider_interface import EmailProviderInterface, OutgoingEmail, SendResult

logger = logging.getLogger(__name__)

# The SDK reads a module-level api_key, so accounts must not interleave
_api_key_lock = threading.Lock()
# The SDK takes no per-call timeout; calls run here so we can stop waiting
_send_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="resend-send")

AUTH_ERRORS = (resend_exceptions.MissingApiKeyError, resend_exceptions.InvalidApiKeyError)


class ResendProvider(EmailProviderInterface):
    """Resend API through the official SDK."""

    @property
    def code(self) -> str:
        return EmailProvider.RESEND

    @property
    def name(self) -> str:
        return "Resend"

    def is_configured(self, config: EmailAccountConfig) -> bool:
        return bool(config.resend_api_key)

    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        params = {
            "from": message.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            params["text"] = message.text
        headers = message.tracking_headers()
        if headers:
            params["headers"] = headers

        with _api_key_lock:
            resend.api_key = config.resend_api_key
            future = _send_executor.submit(resend.Emails.send, params)
            try:
                response = future.result(timeout=timeout)
            except FutureTimeout:
                raise DeliveryError(f"Resend request timed out after {timeout}s", provider=self.code)
            except AUTH_ERRORS as e:
                raise EmailAuthError(f"Resend rejected the API key: {e}", provider=self.code)
            except resend_exceptions.ResendError as e:
                if str(getattr(e, "code", "")) in ("401", "403"):
                    raise EmailAuthError(f"Resend rejected the API key: {e}", provider=self.code)
                raise DeliveryError(f"Resend API error: {e}", provider=self.code)
            except OSError as e:
                raise DeliveryError(f"Resend request failed: {e}", provider=self.code)

        return SendResult(provider=self.code, provider_message_id=response.get("id"))
