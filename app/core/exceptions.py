# app/core/exceptions.py
"""
Domain errors for segments, campaigns and email delivery.

Services raise these; endpoints translate them into HTTP responses.
Delivery errors never leave the dispatch loop: they end up in the
communication log of the recipient they belong to.
"""


class CRMError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(CRMError):
    """Malformed rule tree or template. Raised before any state change."""


class InvalidSegmentError(ValidationError):
    """Segment exists but its rule tree cannot target anyone."""


class NotFoundError(CRMError):
    """Segment, campaign or log entry missing or owned by someone else."""

    status_code = 404


class ConfigurationRequiredError(CRMError):
    """No working email account configuration for the owner."""


class EmptyAudienceError(CRMError):
    """Segment matches zero customers at campaign creation time."""


class DeliveryError(CRMError):
    """A single send failed. Captured per recipient, never fatal to a campaign."""

    status_code = 502

    def __init__(self, message: str, retryable: bool = True, provider: str = None):
        self.retryable = retryable
        self.provider = provider
        self.attempts = 0
        super().__init__(message)


class EmailAuthError(DeliveryError):
    """The provider rejected the account credentials. Never retried."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(message, retryable=False, provider=provider)
