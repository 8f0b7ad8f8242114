# app/services/email/provider_factory.py
import logging
from typing import Dict, Optional, List

from app.constants.campaign import EmailProvider
from app.core.exceptions import ConfigurationRequiredError
from app.models.email_account import EmailAccountConfig
from .provider_interface import EmailProviderInterface
from .providers.brevo_provider import BrevoProvider
from .providers.gmail_provider import GmailApiProvider
from .providers.resend_provider import ResendProvider
from .providers.sendgrid_provider import SendGridProvider
from .providers.smtp_provider import SmtpProvider

logger = logging.getLogger(__name__)


class EmailProviderFactory:
    """
    Factory for email provider instances.

    Picks the backend for an account configuration: an explicit, usable
    preference wins; otherwise the first backend with credentials in
    EmailProvider.PRIORITY order.
    """

    def __init__(self, providers: Optional[List[EmailProviderInterface]] = None):
        if providers is None:
            providers = [
                ResendProvider(),
                SendGridProvider(),
                BrevoProvider(),
                GmailApiProvider(),
                SmtpProvider(),
            ]
        self._providers: Dict[str, EmailProviderInterface] = {p.code: p for p in providers}

    def get_provider(self, code: str) -> EmailProviderInterface:
        """
        Get an email provider by its code.

        Raises:
            ValueError: If provider is not available
        """
        provider = self._providers.get(code)
        if not provider:
            raise ValueError(f"Email provider '{code}' is not available")
        return provider

    def usable_providers(self, config: Optional[EmailAccountConfig]) -> List[str]:
        """Codes of every backend the config has credentials for, in priority order."""
        if config is None or not config.from_email:
            return []
        return [
            code
            for code in EmailProvider.PRIORITY
            if code in self._providers and self._providers[code].is_configured(config)
        ]

    def resolve(self, config: Optional[EmailAccountConfig]) -> EmailProviderInterface:
        """
        Choose the backend for an account.

        Raises:
            ConfigurationRequiredError: If no backend is usable
        """
        usable = self.usable_providers(config)
        if not usable:
            raise ConfigurationRequiredError(
                "Email settings not configured. Please configure an email service first."
            )

        preferred = config.provider
        if preferred:
            if preferred in usable:
                return self._providers[preferred]
            logger.warning(
                f"Preferred email provider '{preferred}' is missing credentials, "
                f"falling back to '{usable[0]}'"
            )
        return self._providers[usable[0]]


# Global factory instance (singleton pattern)
_factory_instance: Optional[EmailProviderFactory] = None


def get_provider_factory() -> EmailProviderFactory:
    """Get the global email provider factory instance."""
    global _factory_instance
    if _factory_instance is None:
        _factory_instance = EmailProviderFactory()
    return _factory_instance
