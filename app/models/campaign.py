# app/models/campaign.py
"""
Campaign model - a templated email send to the customers of one segment.

- total_recipients is the audience size counted at creation (a snapshot)
- dispatched_count is how many log rows dispatch actually produced
- every other counter is derived from the communication log
"""

import uuid
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, ForeignKey, JSON, func, text
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=lambda: f"cmpn_{uuid.uuid4().hex[:12]}")
    owner_id = Column(String, nullable=False, index=True)
    segment_id = Column(String, ForeignKey("segments.id"), nullable=False, index=True)

    # Campaign Details
    name = Column(String(200), nullable=False)
    subject = Column(String(500), nullable=False)  # supports {variables}
    body = Column(Text, nullable=False)  # supports {variables}
    template_variables = Column(JSON, nullable=True, default=list)

    # Status Tracking
    status = Column(String(20), nullable=False, server_default=text("'draft'"))
    # Options: 'draft', 'processing', 'completed', 'failed'
    failure_reason = Column(Text, nullable=True)

    # Stats
    total_recipients = Column(Integer, nullable=False, server_default=text("0"))
    dispatched_count = Column(Integer, nullable=False, server_default=text("0"))
    sent_count = Column(Integer, nullable=False, server_default=text("0"))
    delivered_count = Column(Integer, nullable=False, server_default=text("0"))
    opened_count = Column(Integer, nullable=False, server_default=text("0"))
    clicked_count = Column(Integer, nullable=False, server_default=text("0"))
    failed_count = Column(Integer, nullable=False, server_default=text("0"))
    delivery_rate = Column(Float, nullable=False, server_default=text("0"))
    open_rate = Column(Float, nullable=False, server_default=text("0"))
    click_rate = Column(Float, nullable=False, server_default=text("0"))

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    segment = relationship("Segment")
    logs = relationship(
        "CommunicationLog", back_populates="campaign", cascade="all, delete-orphan"
    )
