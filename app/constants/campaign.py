# app/constants/campaign.py
"""
Constants for campaign, communication log and email provider values.

Provides type-safe constants to replace hardcoded strings throughout the codebase.
"""


class CampaignStatus:
    """Campaign lifecycle status values. Transitions only move forward."""
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    _TRANSITIONS = {
        DRAFT: {PROCESSING, FAILED},
        PROCESSING: {COMPLETED, FAILED},
        COMPLETED: set(),
        FAILED: set(),
    }

    @classmethod
    def all_values(cls) -> list[str]:
        """Return all valid status values."""
        return [cls.DRAFT, cls.PROCESSING, cls.COMPLETED, cls.FAILED]

    @classmethod
    def is_valid(cls, status: str) -> bool:
        """Check if a status value is valid."""
        return status in cls.all_values()

    @classmethod
    def can_transition(cls, current: str, new: str) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in (cls.COMPLETED, cls.FAILED)


class DeliveryStatus:
    """
    Communication log status values.

    queued -> sent -> delivered -> opened -> clicked is a one-way ladder;
    failed sits outside it.
    """
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"

    LADDER = [QUEUED, SENT, DELIVERED, OPENED, CLICKED]

    # Timestamp column recorded when a stage is first observed
    TIMESTAMP_FIELDS = {
        SENT: "sent_at",
        DELIVERED: "delivered_at",
        OPENED: "opened_at",
        CLICKED: "clicked_at",
    }

    @classmethod
    def all_values(cls) -> list[str]:
        """Return all valid status values."""
        return cls.LADDER + [cls.FAILED]

    @classmethod
    def is_valid(cls, status: str) -> bool:
        """Check if a status value is valid."""
        return status in cls.all_values()

    @classmethod
    def rank(cls, status: str) -> int:
        """Position on the ladder; failed ranks below queued."""
        if status in cls.LADDER:
            return cls.LADDER.index(status)
        return -1

    @classmethod
    def at_least(cls, status: str) -> list[str]:
        """All ladder statuses at or beyond the given one."""
        rank = cls.rank(status)
        if rank < 0:
            return [status]
        return cls.LADDER[rank:]


class EmailProvider:
    """Email backend codes selectable per account."""
    SMTP = "smtp"
    GMAIL_API = "gmail-api"
    SENDGRID = "sendgrid"
    RESEND = "resend"
    BREVO = "brevo"

    # Auto-detection order. HTTP APIs come first: outbound SMTP ports are
    # blocked on most PaaS hosts.
    PRIORITY = [RESEND, SENDGRID, BREVO, GMAIL_API, SMTP]

    @classmethod
    def all_values(cls) -> list[str]:
        """Return all valid provider codes."""
        return list(cls.PRIORITY)

    @classmethod
    def is_valid(cls, provider: str) -> bool:
        """Check if a provider code is valid."""
        return provider in cls.all_values()
