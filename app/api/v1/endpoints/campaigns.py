# app/api/v1/endpoints/campaigns.py
"""
API endpoints for email campaigns.

Production features:
- Create and dispatch campaigns to a segment in the background
- Cancel-and-delete of running campaigns
- Per-recipient delivery logs
- Stats refresh from the communication log
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
import logging

from app import crud
from app.api import deps
from app.core.exceptions import CRMError
from app.core.limiter import limiter
from app.db.session import get_db
from app.schemas.campaign import CampaignCreate, CampaignResponse, CampaignStats
from app.schemas.communication_log import CommunicationLogResponse
from app.schemas.token import TokenPayload
from app.services import campaign_service
from app.services.campaign_analytics import campaign_stats
from app.services.campaign_jobs import CampaignJobManager, get_job_manager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/campaigns", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_campaign(
    request: Request,
    campaign_in: CampaignCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    job_manager: CampaignJobManager = Depends(get_job_manager),
):
    """
    Create a campaign for a segment and start sending it.

    The campaign is created in 'draft' status and dispatched in the background;
    the response returns before any email is sent.

    Fails with 400 when no email service is configured, the segment has no
    rules or currently matches nobody, and with 404 for an unknown segment.
    """
    try:
        return campaign_service.create_campaign(
            db, owner_id=current_user.owner_id, obj_in=campaign_in, job_manager=job_manager
        )
    except CRMError as e:
        logger.info(f"Campaign creation rejected for {current_user.owner_id}: {e.message}")
        raise deps.http_error(e)


@router.get("/campaigns", response_model=List[CampaignResponse])
@limiter.limit("30/minute")
async def list_campaigns(
    request: Request,
    skip: int = 0,
    limit: int = 20,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Get the owner's campaigns with optional status filtering."""
    return crud.campaign.get_by_owner(
        db, current_user.owner_id, skip=skip, limit=limit, status=status
    )


@router.get("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    try:
        return campaign_service.get_campaign(
            db, owner_id=current_user.owner_id, campaign_id=campaign_id
        )
    except CRMError as e:
        raise deps.http_error(e)


# Plain def: cancelling waits for the dispatch thread, so keep it off the event loop
@router.delete("/campaigns/{campaign_id}")
def delete_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    job_manager: CampaignJobManager = Depends(get_job_manager),
):
    """Delete a campaign and its logs, stopping its dispatch if still running."""
    try:
        campaign_service.delete_campaign(
            db, owner_id=current_user.owner_id, campaign_id=campaign_id, job_manager=job_manager
        )
    except CRMError as e:
        raise deps.http_error(e)
    return {"id": campaign_id, "message": "Campaign deleted successfully"}


@router.post("/campaigns/{campaign_id}/refresh-stats", response_model=CampaignResponse)
@limiter.limit("30/minute")
async def refresh_campaign_stats(
    request: Request,
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Recompute counters and rates from the communication log."""
    try:
        return campaign_service.refresh_stats(
            db, owner_id=current_user.owner_id, campaign_id=campaign_id
        )
    except CRMError as e:
        raise deps.http_error(e)


@router.get("/campaigns/{campaign_id}/stats", response_model=CampaignStats)
async def get_campaign_stats(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    try:
        campaign = campaign_service.get_campaign(
            db, owner_id=current_user.owner_id, campaign_id=campaign_id
        )
    except CRMError as e:
        raise deps.http_error(e)
    return campaign_stats(db, campaign)


@router.get("/campaigns/{campaign_id}/logs", response_model=List[CommunicationLogResponse])
async def list_campaign_logs(
    campaign_id: str,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Per-recipient delivery records with the recipient customer attached."""
    try:
        return campaign_service.get_campaign_logs(
            db,
            owner_id=current_user.owner_id,
            campaign_id=campaign_id,
            skip=skip,
            limit=limit,
            status=status,
        )
    except CRMError as e:
        raise deps.http_error(e)
