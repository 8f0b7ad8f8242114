# app/schemas/campaign.py
"""
Pydantic schemas for email campaigns.

Templates use single-brace {variable} placeholders; placeholders that do not
match a customer attribute are sent as-is.
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
import re


class CampaignCreate(BaseModel):
    """Schema for creating (and immediately dispatching) a campaign."""

    name: str = Field(..., min_length=1, max_length=200, description="Internal campaign name")
    segment_id: str = Field(..., min_length=1)
    subject: str = Field(..., max_length=500, description="Email subject line with {variable} support")
    body: str = Field(..., description="Email body (HTML or text) with {variable} support")

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v: str) -> str:
        """Subjects are single line."""
        v = v.replace('\n', ' ').replace('\r', ' ')
        v = re.sub(r'\s{2,}', ' ', v)
        return v.strip()


class CampaignResponse(BaseModel):
    """Schema for campaign response."""

    id: str
    owner_id: str
    segment_id: str
    name: str
    subject: str
    body: str
    template_variables: Optional[List[str]]
    status: str
    failure_reason: Optional[str]
    total_recipients: int
    dispatched_count: int
    sent_count: int
    delivered_count: int
    opened_count: int
    clicked_count: int
    failed_count: int
    delivery_rate: float
    open_rate: float
    click_rate: float
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CampaignStats(BaseModel):
    """Schema for campaign analytics."""

    campaign_id: str
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
    status_breakdown: Dict[str, int]
