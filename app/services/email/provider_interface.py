# app/services/email/provider_interface.py
from abc import ABC, abstractmethod
from typing import Optional, Dict
from dataclasses import dataclass, field
from email.utils import formataddr

from app.models.email_account import EmailAccountConfig


@dataclass
class OutgoingEmail:
    """A fully rendered email for a single recipient."""
    to: str
    subject: str
    html: str
    from_email: str
    text: Optional[str] = None
    to_name: Optional[str] = None
    from_name: Optional[str] = None
    message_id: Optional[str] = None  # our tracking id, sent as a header
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def sender(self) -> str:
        """RFC 5322 "Name <address>" form of the sender."""
        return formataddr((self.from_name or "", self.from_email))

    def tracking_headers(self) -> Dict[str, str]:
        headers = dict(self.headers)
        if self.message_id:
            headers["X-Campaign-Message-Id"] = self.message_id
        return headers


@dataclass
class SendResult:
    """Result of a successful send."""
    provider: str
    provider_message_id: Optional[str] = None
    delivered: bool = False  # backend confirmed delivery, not just acceptance
    attempts: int = 1


class EmailProviderInterface(ABC):
    """
    Core interface that all email backends must implement.
    This abstraction allows swapping backends without changing dispatch logic.

    Implementations raise DeliveryError (or EmailAuthError for rejected
    credentials) and never return a failed result.
    """

    @property
    @abstractmethod
    def code(self) -> str:
        """Provider code identifier (e.g., 'smtp', 'resend')."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g., 'SendGrid')."""
        pass

    @abstractmethod
    def is_configured(self, config: EmailAccountConfig) -> bool:
        """Whether the account holds the credentials this backend needs."""
        pass

    @abstractmethod
    def send(self, message: OutgoingEmail, config: EmailAccountConfig, timeout: float) -> SendResult:
        """Send one email, giving up after ``timeout`` seconds."""
        pass
