# app/services/campaign_analytics.py
"""
Campaign statistics derived from the communication log.

Counts follow the delivery ladder, so a clicked row also counts as opened,
delivered and sent. That keeps clicked <= opened <= delivered <= sent
regardless of which callbacks arrived.

Rates are percentages rounded to 2 places:
- delivery rate: delivered / dispatched recipients (delivered needs a
  receipt or an open; accepted sends stay "sent")
- open rate: opened / delivered
- click rate: clicked / opened
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from app import crud
from app.constants.campaign import DeliveryStatus
from app.models.campaign import Campaign

logger = logging.getLogger(__name__)


def _rate(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def compute_stats(status_counts: Dict[str, int], dispatched: int) -> Dict[str, Any]:
    """
    Ladder counts and rates from per-status row counts.

    A backend accepting a message only makes it "sent"; no backend reports
    delivery synchronously. Delivery rate stays at 0 for a fully sent
    campaign until delivery receipts or opens move rows up the ladder.
    """
    def reached(status: str) -> int:
        return sum(status_counts.get(s, 0) for s in DeliveryStatus.at_least(status))

    sent = reached(DeliveryStatus.SENT)
    delivered = reached(DeliveryStatus.DELIVERED)
    opened = reached(DeliveryStatus.OPENED)
    clicked = reached(DeliveryStatus.CLICKED)

    return {
        "sent": sent,
        "delivered": delivered,
        "opened": opened,
        "clicked": clicked,
        "failed": status_counts.get(DeliveryStatus.FAILED, 0),
        "delivery_rate": _rate(delivered, dispatched),
        "open_rate": _rate(opened, delivered),
        "click_rate": _rate(clicked, opened),
    }


def refresh_campaign_stats(db: Session, campaign: Campaign) -> Campaign:
    """Recompute and store a campaign's counters from its log rows."""
    counts = crud.communication_log.count_by_status(db, campaign.id)
    stats = compute_stats(counts, campaign.dispatched_count or 0)
    logger.debug(f"Campaign {campaign.id} stats: {stats}")
    return crud.campaign.apply_stats(db, campaign=campaign, stats=stats)


def campaign_stats(db: Session, campaign: Campaign) -> Dict[str, Any]:
    """Stats block for one campaign, including the raw status breakdown."""
    counts = crud.communication_log.count_by_status(db, campaign.id)
    stats = compute_stats(counts, campaign.dispatched_count or 0)
    return {
        "campaign_id": campaign.id,
        "total_recipients": campaign.total_recipients,
        "dispatched": campaign.dispatched_count or 0,
        "status_breakdown": counts,
        **stats,
    }


def account_overview(db: Session, owner_id: str) -> Dict[str, Any]:
    """Totals across every campaign of an owner."""
    campaigns = crud.campaign.get_by_owner(db, owner_id, limit=None)
    by_status = crud.campaign.count_by_status(db, owner_id)

    totals = {
        "total_recipients": 0,
        "dispatched": 0,
        "sent": 0,
        "delivered": 0,
        "opened": 0,
        "clicked": 0,
        "failed": 0,
    }
    for campaign in campaigns:
        totals["total_recipients"] += campaign.total_recipients or 0
        totals["dispatched"] += campaign.dispatched_count or 0
        totals["sent"] += campaign.sent_count or 0
        totals["delivered"] += campaign.delivered_count or 0
        totals["opened"] += campaign.opened_count or 0
        totals["clicked"] += campaign.clicked_count or 0
        totals["failed"] += campaign.failed_count or 0

    return {
        "total_campaigns": len(campaigns),
        "campaigns_by_status": by_status,
        "total_segments": crud.segment.count_by_owner(db, owner_id),
        **totals,
        "delivery_rate": _rate(totals["delivered"], totals["dispatched"]),
        "open_rate": _rate(totals["opened"], totals["delivered"]),
        "click_rate": _rate(totals["clicked"], totals["opened"]),
    }
