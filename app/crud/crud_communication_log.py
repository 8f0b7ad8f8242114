# app/crud/crud_communication_log.py
"""
CRUD operations for communication logs.

This tracks individual email sends per customer in a campaign.

Status only moves forward along queued -> sent -> delivered -> opened ->
clicked. When a later stage is observed first (a click with no recorded
open, say) the skipped stages get the same timestamp. Failed rows are
never upgraded by tracking callbacks, and repeated callbacks are no-ops.
"""

from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload
from app.constants.campaign import DeliveryStatus
from app.models.communication_log import CommunicationLog
from app.models.customer import Customer
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CRUDCommunicationLog:
    """CRUD operations for communication logs."""

    def create(
        self,
        db: Session,
        *,
        campaign_id: str,
        recipient: Customer,
        message_id: str,
        personalized_subject: Optional[str] = None,
        status: str = DeliveryStatus.QUEUED,
        failure_reason: Optional[str] = None
    ) -> CommunicationLog:
        """Create a log row for a campaign recipient."""
        log = CommunicationLog(
            message_id=message_id,
            campaign_id=campaign_id,
            customer_id=recipient.id,
            recipient_email=recipient.email,
            recipient_name=recipient.name,
            personalized_subject=personalized_subject,
            status=status,
            failure_reason=failure_reason,
            log_metadata={},
        )
        db.add(log)
        db.commit()
        db.refresh(log)
        return log

    def get(self, db: Session, log_id: str) -> Optional[CommunicationLog]:
        """Get log row by ID."""
        return db.query(CommunicationLog).filter(CommunicationLog.id == log_id).first()

    def get_by_message_id(self, db: Session, message_id: str) -> Optional[CommunicationLog]:
        """Get log row by its tracking message ID."""
        return (
            db.query(CommunicationLog)
            .filter(CommunicationLog.message_id == message_id)
            .first()
        )

    def get_by_campaign(
        self,
        db: Session,
        campaign_id: str,
        *,
        skip: int = 0,
        limit: int = 100,
        status: Optional[str] = None
    ) -> List[CommunicationLog]:
        """Get log rows for a campaign with the recipient customer loaded."""
        query = (
            db.query(CommunicationLog)
            .options(joinedload(CommunicationLog.customer))
            .filter(CommunicationLog.campaign_id == campaign_id)
        )

        if status:
            query = query.filter(CommunicationLog.status == status)

        return (
            query.order_by(CommunicationLog.queued_at, CommunicationLog.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_status(self, db: Session, campaign_id: str) -> Dict[str, int]:
        """Number of log rows per status for a campaign."""
        rows = (
            db.query(CommunicationLog.status, func.count(CommunicationLog.id))
            .filter(CommunicationLog.campaign_id == campaign_id)
            .group_by(CommunicationLog.status)
            .all()
        )
        return {status: count for status, count in rows}

    def _advance(self, log: CommunicationLog, status: str, at: datetime) -> bool:
        """Move a row up the ladder, backfilling skipped stage timestamps."""
        if log.status == DeliveryStatus.FAILED:
            return False
        target = DeliveryStatus.rank(status)
        if target <= DeliveryStatus.rank(log.status):
            return False

        for stage in DeliveryStatus.LADDER[1:target + 1]:
            field = DeliveryStatus.TIMESTAMP_FIELDS[stage]
            if getattr(log, field) is None:
                setattr(log, field, at)
        log.status = status
        return True

    def mark_sent(
        self,
        db: Session,
        *,
        log: CommunicationLog,
        provider: str,
        provider_message_id: Optional[str],
        attempts: int,
        delivered: bool = False
    ) -> CommunicationLog:
        """Mark log as sent (or delivered when the backend confirmed it)."""
        status = DeliveryStatus.DELIVERED if delivered else DeliveryStatus.SENT
        self._advance(log, status, _utcnow())
        log.provider = provider
        log.provider_message_id = provider_message_id
        log.attempts = attempts
        db.commit()
        db.refresh(log)
        return log

    def mark_failed(
        self,
        db: Session,
        *,
        log: CommunicationLog,
        error_message: str,
        attempts: int,
        provider: Optional[str] = None
    ) -> CommunicationLog:
        """Mark log as failed."""
        log.status = DeliveryStatus.FAILED
        log.failure_reason = error_message
        log.attempts = attempts
        if provider:
            log.provider = provider
        db.commit()
        db.refresh(log)
        return log

    def track_open(self, db: Session, *, message_id: str) -> Tuple[Optional[CommunicationLog], bool]:
        """
        Track email open.

        Returns:
            tuple: (log, changed) - log row and whether this call changed it
        """
        log = self.get_by_message_id(db, message_id)
        changed = False
        if log:
            changed = self._advance(log, DeliveryStatus.OPENED, _utcnow())
            if changed:
                db.commit()
                db.refresh(log)
        return log, changed

    def track_view(self, db: Session, *, message_id: str) -> Tuple[Optional[CommunicationLog], bool]:
        """Track a "view in browser" visit. Counts as an open."""
        log, changed = self.track_open(db, message_id=message_id)
        if log and not (log.log_metadata or {}).get("viewed_online_at"):
            log.log_metadata = {**(log.log_metadata or {}), "viewed_online_at": _utcnow().isoformat()}
            db.commit()
            db.refresh(log)
        return log, changed

    def track_click(self, db: Session, *, message_id: str) -> Tuple[Optional[CommunicationLog], bool]:
        """
        Track link click. Backfills opened/delivered/sent timestamps.

        Returns:
            tuple: (log, changed) - log row and whether this call changed it
        """
        log = self.get_by_message_id(db, message_id)
        changed = False
        if log:
            changed = self._advance(log, DeliveryStatus.CLICKED, _utcnow())
            if changed:
                db.commit()
                db.refresh(log)
        return log, changed

    def track_feedback(
        self, db: Session, *, message_id: str, answer: str
    ) -> Tuple[Optional[CommunicationLog], bool]:
        """Record a yes/no feedback answer. Counts as a click; first answer wins."""
        log, changed = self.track_click(db, message_id=message_id)
        if log and log.status != DeliveryStatus.FAILED and "feedback" not in (log.log_metadata or {}):
            log.log_metadata = {
                **(log.log_metadata or {}),
                "feedback": answer,
                "feedback_at": _utcnow().isoformat(),
            }
            db.commit()
            db.refresh(log)
            changed = True
        return log, changed

    def apply_receipt(
        self,
        db: Session,
        *,
        message_id: str,
        status: str,
        timestamp: Optional[datetime] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> Tuple[Optional[CommunicationLog], bool]:
        """
        Apply a provider delivery receipt.

        A "failed" receipt only sticks while the recipient has not been seen
        engaging with the email (no open or click recorded).
        """
        log = self.get_by_message_id(db, message_id)
        if not log:
            return None, False

        at = timestamp or _utcnow()
        if status == DeliveryStatus.FAILED:
            engaged = DeliveryStatus.rank(log.status) >= DeliveryStatus.rank(DeliveryStatus.OPENED)
            if log.status == DeliveryStatus.FAILED or engaged:
                return log, False
            log.status = DeliveryStatus.FAILED
            log.failure_reason = (details or {}).get("reason") or "Delivery failure reported by provider"
            changed = True
        else:
            changed = self._advance(log, status, at)

        if changed:
            if details:
                log.log_metadata = {**(log.log_metadata or {}), "receipt": details}
            db.commit()
            db.refresh(log)
        return log, changed


# Create singleton instance
communication_log = CRUDCommunicationLog()
