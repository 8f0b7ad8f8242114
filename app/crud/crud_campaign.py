# app/crud/crud_campaign.py
"""
CRUD operations for campaigns.

Status changes go through the mark_* helpers, which refuse to move a
campaign backwards or out of a terminal state.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
from app.constants.campaign import CampaignStatus
from app.models.campaign import Campaign
from app.schemas.campaign import CampaignCreate
from datetime import datetime, timezone


class CRUDCampaign:
    """CRUD operations for campaigns."""

    def create(
        self,
        db: Session,
        *,
        owner_id: str,
        obj_in: CampaignCreate,
        total_recipients: int,
        template_variables: List[str]
    ) -> Campaign:
        """Create a new campaign in draft status."""
        campaign = Campaign(
            owner_id=owner_id,
            segment_id=obj_in.segment_id,
            name=obj_in.name,
            subject=obj_in.subject,
            body=obj_in.body,
            template_variables=template_variables,
            total_recipients=total_recipients,
            status=CampaignStatus.DRAFT,
        )
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    def get(self, db: Session, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID."""
        return db.query(Campaign).filter(Campaign.id == campaign_id).first()

    def get_for_owner(self, db: Session, *, owner_id: str, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID if it belongs to the owner."""
        return (
            db.query(Campaign)
            .filter(Campaign.id == campaign_id, Campaign.owner_id == owner_id)
            .first()
        )

    def get_by_owner(
        self,
        db: Session,
        owner_id: str,
        *,
        skip: int = 0,
        limit: Optional[int] = 100,
        status: Optional[str] = None
    ) -> List[Campaign]:
        """Get all campaigns of an owner with optional status filtering."""
        query = db.query(Campaign).filter(Campaign.owner_id == owner_id)

        if status:
            query = query.filter(Campaign.status == status)

        return query.order_by(Campaign.created_at.desc(), Campaign.id).offset(skip).limit(limit).all()

    def count_by_status(self, db: Session, owner_id: str) -> Dict[str, int]:
        """Campaign counts per status for an owner."""
        rows = (
            db.query(Campaign.status, func.count(Campaign.id))
            .filter(Campaign.owner_id == owner_id)
            .group_by(Campaign.status)
            .all()
        )
        counts = {status: 0 for status in CampaignStatus.all_values()}
        counts.update({status: count for status, count in rows})
        return counts

    def _transition(self, campaign: Campaign, new_status: str) -> None:
        if not CampaignStatus.can_transition(campaign.status, new_status):
            raise ValueError(
                f"Campaign {campaign.id} cannot move from '{campaign.status}' to '{new_status}'"
            )
        campaign.status = new_status
        campaign.updated_at = datetime.now(timezone.utc)

    def mark_processing(self, db: Session, *, campaign: Campaign):
        """Mark campaign as currently sending."""
        self._transition(campaign, CampaignStatus.PROCESSING)
        campaign.started_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(campaign)

    def mark_completed(self, db: Session, *, campaign: Campaign):
        """Mark campaign as completed."""
        self._transition(campaign, CampaignStatus.COMPLETED)
        campaign.completed_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(campaign)

    def mark_failed(self, db: Session, *, campaign: Campaign, error: str):
        """Mark campaign as failed."""
        self._transition(campaign, CampaignStatus.FAILED)
        campaign.failure_reason = error
        campaign.completed_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(campaign)

    def set_dispatched_count(self, db: Session, *, campaign: Campaign, count: int):
        """Record how many recipients the dispatch run resolved."""
        campaign.dispatched_count = count
        db.commit()

    def apply_stats(self, db: Session, *, campaign: Campaign, stats: Dict[str, Any]) -> Campaign:
        """Store counters and rates calculated from the communication log."""
        campaign.sent_count = stats["sent"]
        campaign.delivered_count = stats["delivered"]
        campaign.opened_count = stats["opened"]
        campaign.clicked_count = stats["clicked"]
        campaign.failed_count = stats["failed"]
        campaign.delivery_rate = stats["delivery_rate"]
        campaign.open_rate = stats["open_rate"]
        campaign.click_rate = stats["click_rate"]
        campaign.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(campaign)
        return campaign

    def delete(self, db: Session, *, campaign: Campaign) -> bool:
        """Delete campaign together with its communication logs."""
        db.delete(campaign)
        db.commit()
        return True


# Create singleton instance
campaign = CRUDCampaign()
