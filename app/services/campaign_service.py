# app/services/campaign_service.py
"""
Campaign lifecycle: validated creation with background dispatch, deletion
with job cancellation, and stats refresh.

Creation is all-or-nothing: every check runs before the campaign row is
written, so a rejected request leaves no trace.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app import crud
from app.core.exceptions import (
    ConfigurationRequiredError,
    EmptyAudienceError,
    InvalidSegmentError,
    NotFoundError,
    ValidationError,
)
from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog
from app.schemas.campaign import CampaignCreate
from app.services.campaign_analytics import refresh_campaign_stats
from app.services.campaign_jobs import CampaignJobManager
from app.services.email.templating import extract_variables
from app.services.segment_rules import count_leaf_rules

logger = logging.getLogger(__name__)


def create_campaign(
    db: Session,
    *,
    owner_id: str,
    obj_in: CampaignCreate,
    job_manager: CampaignJobManager
) -> Campaign:
    """
    Create a campaign in draft and hand it to the dispatch job manager.

    Raises:
        ValidationError: Empty subject or body
        ConfigurationRequiredError: Owner has no configured email account
        NotFoundError: Segment missing, deleted or owned by someone else
        InvalidSegmentError: Segment rules cannot target anyone
        EmptyAudienceError: Segment currently matches no customers
    """
    if not obj_in.subject.strip() or not obj_in.body.strip():
        raise ValidationError("Subject and message are required")

    account = crud.email_account.get_by_owner(db, owner_id)
    if account is None or not account.is_configured:
        raise ConfigurationRequiredError(
            "Email settings not configured. Please configure an email service first."
        )

    segment = crud.segment.get_for_owner(db, owner_id=owner_id, segment_id=obj_in.segment_id)
    if segment is None:
        raise NotFoundError("Segment not found")

    try:
        if count_leaf_rules(segment.rules) == 0:
            raise InvalidSegmentError("Segment has no rules")
        audience = crud.customer.count_matching(db, owner_id=owner_id, rules=segment.rules)
    except InvalidSegmentError:
        raise
    except ValidationError as e:
        raise InvalidSegmentError(f"Segment rules are invalid: {e.message}")

    if audience == 0:
        raise EmptyAudienceError("No customers match this segment")

    campaign = crud.campaign.create(
        db,
        owner_id=owner_id,
        obj_in=obj_in,
        total_recipients=audience,
        template_variables=extract_variables(obj_in.subject, obj_in.body),
    )
    logger.info(f"Campaign {campaign.id} created for {audience} recipients, queueing dispatch")

    job_manager.submit(campaign.id)
    db.refresh(campaign)
    return campaign


def get_campaign(db: Session, *, owner_id: str, campaign_id: str) -> Campaign:
    campaign = crud.campaign.get_for_owner(db, owner_id=owner_id, campaign_id=campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found")
    return campaign


def delete_campaign(
    db: Session,
    *,
    owner_id: str,
    campaign_id: str,
    job_manager: CampaignJobManager
) -> None:
    """Cancel any running dispatch, then delete the campaign and its logs."""
    campaign = get_campaign(db, owner_id=owner_id, campaign_id=campaign_id)
    if job_manager.cancel(campaign.id):
        logger.info(f"Dispatch for campaign {campaign.id} cancelled before deletion")
    db.refresh(campaign)
    crud.campaign.delete(db, campaign=campaign)
    logger.info(f"Campaign {campaign_id} deleted")


def refresh_stats(db: Session, *, owner_id: str, campaign_id: str) -> Campaign:
    campaign = get_campaign(db, owner_id=owner_id, campaign_id=campaign_id)
    return refresh_campaign_stats(db, campaign)


def get_campaign_logs(
    db: Session,
    *,
    owner_id: str,
    campaign_id: str,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None
) -> List[CommunicationLog]:
    campaign = get_campaign(db, owner_id=owner_id, campaign_id=campaign_id)
    return crud.communication_log.get_by_campaign(
        db, campaign.id, skip=skip, limit=limit, status=status
    )
