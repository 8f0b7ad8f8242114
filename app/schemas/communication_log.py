# app/schemas/communication_log.py
"""
Pydantic schemas for communication logs and provider delivery receipts.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.constants.campaign import DeliveryStatus


class RecipientSummary(BaseModel):
    id: str
    name: str
    email: str
    city: Optional[str]

    class Config:
        from_attributes = True


class CommunicationLogResponse(BaseModel):
    """Schema for a single recipient's delivery record."""

    id: str
    message_id: str
    campaign_id: str
    customer_id: str
    recipient_email: str
    recipient_name: Optional[str]
    personalized_subject: Optional[str]
    status: str
    failure_reason: Optional[str]
    provider: Optional[str]
    attempts: int
    log_metadata: Optional[Dict[str, Any]]
    queued_at: datetime
    sent_at: Optional[datetime]
    delivered_at: Optional[datetime]
    opened_at: Optional[datetime]
    clicked_at: Optional[datetime]
    customer: Optional[RecipientSummary] = None

    class Config:
        from_attributes = True


class DeliveryReceipt(BaseModel):
    """Provider webhook payload."""

    message_id: str = Field(..., min_length=1)
    status: str
    timestamp: Optional[datetime] = None
    reason: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DeliveryStatus.all_values() or v == DeliveryStatus.QUEUED:
            raise ValueError(
                f"status must be one of: {', '.join(DeliveryStatus.all_values()[1:])}"
            )
        return v


class DeliveryReceiptResponse(BaseModel):
    message_id: str
    status: str
    updated: bool
