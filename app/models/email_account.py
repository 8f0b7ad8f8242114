# app/models/email_account.py
"""
EmailAccountConfig model - the sending account of one owner.

Holds the preferred provider and the credentials for every backend the owner
has set up. The provider factory picks a backend from these once per send run.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, func
from app.db.base_class import Base


class EmailAccountConfig(Base):
    __tablename__ = "email_account_configs"

    id = Column(String, primary_key=True, default=lambda: f"eacc_{uuid.uuid4().hex[:12]}")
    owner_id = Column(String, nullable=False, unique=True, index=True)

    # Preferred backend: 'smtp', 'gmail-api', 'sendgrid', 'resend', 'brevo' (null = auto)
    provider = Column(String(30), nullable=True)

    # Sender identity
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(200), nullable=True)

    # SMTP credentials
    smtp_host = Column(String(255), nullable=True, default="smtp.gmail.com")
    smtp_port = Column(Integer, nullable=True, default=587)
    smtp_username = Column(String(255), nullable=True)
    smtp_password = Column(Text, nullable=True)

    # HTTP API credentials
    google_access_token = Column(Text, nullable=True)
    sendgrid_api_key = Column(Text, nullable=True)
    resend_api_key = Column(Text, nullable=True)
    brevo_api_key = Column(Text, nullable=True)

    is_configured = Column(Boolean, nullable=False, default=False)
    last_tested_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
