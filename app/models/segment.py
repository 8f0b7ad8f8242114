# app/models/segment.py
"""
Segment model - a named, owner-scoped rule tree plus cached audience stats.

The rule tree is stored as JSON:
    {"combinator": "and", "rules": [{"field": ..., "operator": ..., "value": ...}, ...]}
Dynamic segments are re-evaluated every time they are read; the cached stats
are only a display hint refreshed on create/update.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Text, Integer, Float, JSON, func
from app.db.base_class import Base


class Segment(Base):
    __tablename__ = "segments"

    id = Column(String, primary_key=True, default=lambda: f"seg_{uuid.uuid4().hex[:12]}")
    owner_id = Column(String, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    rules = Column(JSON, nullable=False)
    tags = Column(JSON, nullable=True, default=list)

    # Cached stats
    total_customers = Column(Integer, nullable=False, default=0)
    active_customers = Column(Integer, nullable=False, default=0)
    average_spend = Column(Float, nullable=False, default=0)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    spend_tiers = Column(JSON, nullable=True, default=list)
    stats_calculated_at = Column(DateTime(timezone=True), nullable=True)

    is_dynamic = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
