# app/services/email/gateway.py
"""
Email delivery gateway: address validation, backend selection and retries.

One call sends one email. Failures come back as DeliveryError (with the
number of attempts made); EmailAuthError and other non-retryable errors
stop immediately.
"""

import logging
import re
import time
from typing import Callable, Optional

from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from app.core.config import settings
from app.core.exceptions import DeliveryError
from app.models.email_account import EmailAccountConfig
from .provider_factory import EmailProviderFactory, get_provider_factory
from .provider_interface import EmailProviderInterface, OutgoingEmail, SendResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: Optional[str]) -> bool:
    return bool(address) and EMAIL_PATTERN.match(address) is not None


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, DeliveryError) and error.retryable


class EmailGateway:
    """Sends single emails through the account's backend with retry."""

    def __init__(
        self,
        factory: Optional[EmailProviderFactory] = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_max_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.factory = factory or get_provider_factory()
        self.max_attempts = max_attempts or settings.MAX_SEND_ATTEMPTS
        self.backoff_max_seconds = backoff_max_seconds or settings.RETRY_BACKOFF_MAX_SECONDS
        self.timeout_seconds = timeout_seconds or settings.SEND_TIMEOUT_SECONDS
        self._sleep = sleep

    def resolve_provider(self, config: Optional[EmailAccountConfig]) -> EmailProviderInterface:
        """
        Pick the backend for an account. Callers resolve once per send run.

        Raises:
            ConfigurationRequiredError: If the account has no usable backend
        """
        return self.factory.resolve(config)

    def send(
        self,
        message: OutgoingEmail,
        config: EmailAccountConfig,
        provider: Optional[EmailProviderInterface] = None,
    ) -> SendResult:
        """
        Send one email.

        Raises:
            DeliveryError: Invalid address or every attempt failed
            EmailAuthError: Credentials rejected (not retried)
            ConfigurationRequiredError: No provider given and none usable
        """
        if not is_valid_email(message.to):
            raise DeliveryError(f"Invalid email: {message.to}", retryable=False)

        provider = provider or self.resolve_provider(config)
        attempts = 0

        def _attempt() -> SendResult:
            nonlocal attempts
            attempts += 1
            try:
                return provider.send(message, config, self.timeout_seconds)
            except DeliveryError:
                raise
            except Exception as e:
                raise DeliveryError(f"{provider.name} error: {e}", provider=provider.code) from e

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=self.backoff_max_seconds),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            reraise=True,
            before_sleep=lambda state: logger.warning(
                f"Send to {message.to} via {provider.code} failed "
                f"(attempt {state.attempt_number}/{self.max_attempts}): {state.outcome.exception()}"
            ),
        )

        try:
            result = retrying(_attempt)
        except DeliveryError as e:
            e.attempts = attempts
            if e.provider is None:
                e.provider = provider.code
            raise

        result.attempts = attempts
        return result


def get_email_gateway() -> EmailGateway:
    """Gateway wired to the global provider factory and settings."""
    return EmailGateway()
