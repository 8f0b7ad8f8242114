# app/services/email/__init__.py
from .provider_interface import EmailProviderInterface, OutgoingEmail, SendResult
from .provider_factory import EmailProviderFactory, get_provider_factory
from .gateway import EmailGateway, get_email_gateway, is_valid_email

__all__ = [
    "EmailProviderInterface",
    "OutgoingEmail",
    "SendResult",
    "EmailProviderFactory",
    "get_provider_factory",
    "EmailGateway",
    "get_email_gateway",
    "is_valid_email",
]
