# app/schemas/analytics.py

from typing import Dict
from pydantic import BaseModel


class AnalyticsOverview(BaseModel):
    """Totals across every campaign of the current owner."""

    total_campaigns: int
    campaigns_by_status: Dict[str, int]
    total_segments: int
    total_recipients: int
    dispatched: int
    sent: int
    delivered: int
    opened: int
    clicked: int
    failed: int
    delivery_rate: float
    open_rate: float
    click_rate: float
