# app/schemas/email_settings.py
"""
Pydantic schemas for the per-owner email account settings.

Responses never echo secrets; they only say whether one is stored.
"""

from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime

from app.constants.campaign import EmailProvider


class EmailSettingsUpdate(BaseModel):
    """Schema for saving email settings. Omitted secrets keep their stored value."""

    provider: Optional[str] = Field(None, description="smtp, gmail-api, sendgrid, resend, brevo or null for auto")
    from_email: EmailStr
    from_name: Optional[str] = Field(None, max_length=200)
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    google_access_token: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    resend_api_key: Optional[str] = None
    brevo_api_key: Optional[str] = None

    @field_validator('provider')
    @classmethod
    def validate_provider(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "auto":
            return None
        if not EmailProvider.is_valid(v):
            raise ValueError(f"provider must be one of: {', '.join(EmailProvider.all_values())}")
        return v


class EmailSettingsResponse(BaseModel):
    provider: Optional[str]
    active_provider: Optional[str] = None
    from_email: Optional[str]
    from_name: Optional[str]
    smtp_host: Optional[str]
    smtp_port: Optional[int]
    smtp_username: Optional[str]
    has_smtp_password: bool
    has_google_access_token: bool
    has_sendgrid_api_key: bool
    has_resend_api_key: bool
    has_brevo_api_key: bool
    is_configured: bool
    updated_at: Optional[datetime]
