# app/models/communication_log.py
"""
CommunicationLog model - one row per (campaign, recipient) pair.

Records the delivery state machine for a single email:
    queued -> sent -> delivered -> opened -> clicked   (or failed)
with a timestamp for every stage observed. Written by the dispatch job that
created it and by the open/click tracking callbacks.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, JSON, func, text
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class CommunicationLog(Base):
    __tablename__ = "communication_logs"

    id = Column(String, primary_key=True, default=lambda: f"clog_{uuid.uuid4().hex[:12]}")
    message_id = Column(String(200), nullable=False, unique=True, index=True)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False, index=True)

    # Recipient Details (denormalized for quick access)
    recipient_email = Column(String(255), nullable=False)
    recipient_name = Column(String(200), nullable=True)
    personalized_subject = Column(String(500), nullable=True)

    # Delivery Status
    status = Column(String(20), nullable=False, server_default=text("'queued'"))
    # Options: 'queued', 'sent', 'delivered', 'opened', 'clicked', 'failed'
    failure_reason = Column(Text, nullable=True)

    # Email Service Provider Response
    provider = Column(String(30), nullable=True)
    provider_message_id = Column(String(500), nullable=True)
    attempts = Column(Integer, nullable=False, server_default=text("0"))

    # Free-form extras (feedback clicks, receipt payloads)
    log_metadata = Column(JSON, nullable=True, default=dict)

    # Timestamps
    queued_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    campaign = relationship("Campaign", back_populates="logs")
    customer = relationship("Customer")
