# app/crud/crud_email_account.py
"""
CRUD operations for per-owner email account configuration.
"""

from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from app.core.exceptions import ValidationError
from app.models.email_account import EmailAccountConfig
from app.services.email.provider_factory import get_provider_factory


class CRUDEmailAccount:
    """CRUD operations for email account configs."""

    def get_by_owner(self, db: Session, owner_id: str) -> Optional[EmailAccountConfig]:
        """Get the owner's account config, if any."""
        return (
            db.query(EmailAccountConfig)
            .filter(EmailAccountConfig.owner_id == owner_id)
            .first()
        )

    def upsert(self, db: Session, *, owner_id: str, data: Dict[str, Any]) -> EmailAccountConfig:
        """
        Create or update the owner's config.

        Fields missing from ``data`` keep their stored value, so secrets do not
        have to be resent on every save.

        Raises:
            ValidationError: If no email service would be usable afterwards
        """
        account = self.get_by_owner(db, owner_id)
        is_new = account is None
        if is_new:
            account = EmailAccountConfig(owner_id=owner_id, from_email=data.get("from_email"))

        for field, value in data.items():
            setattr(account, field, value)

        usable = get_provider_factory().usable_providers(account)
        if not usable:
            if not is_new:
                db.rollback()
            raise ValidationError("At least one email service must be configured")

        account.is_configured = True
        if is_new:
            db.add(account)
        db.commit()
        db.refresh(account)
        return account


# Create singleton instance
email_account = CRUDEmailAccount()
