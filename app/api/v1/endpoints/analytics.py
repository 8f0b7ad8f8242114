# app/api/v1/endpoints/analytics.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.db.session import get_db
from app.schemas.analytics import AnalyticsOverview
from app.schemas.token import TokenPayload
from app.services.campaign_analytics import account_overview

router = APIRouter()


@router.get("/analytics/overview", response_model=AnalyticsOverview)
async def get_overview(
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Campaign counts by status and delivery totals for the current owner."""
    return account_overview(db, current_user.owner_id)
