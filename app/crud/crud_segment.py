# app/crud/crud_segment.py
"""
CRUD operations for segments.

Segments are soft-deleted; inactive segments are invisible to every read.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.segment import Segment
from app.schemas.segment import SegmentCreate, SegmentUpdate
from datetime import datetime, timezone


class CRUDSegment:
    """CRUD operations for segments."""

    def create(self, db: Session, *, owner_id: str, obj_in: SegmentCreate) -> Segment:
        """Create a segment. Stats are filled in by apply_stats."""
        segment = Segment(
            owner_id=owner_id,
            name=obj_in.name,
            description=obj_in.description,
            rules=obj_in.rules,
            tags=obj_in.tags or [],
            is_dynamic=obj_in.is_dynamic,
        )
        db.add(segment)
        db.commit()
        db.refresh(segment)
        return segment

    def get(self, db: Session, segment_id: str) -> Optional[Segment]:
        """Get segment by ID, including soft-deleted ones."""
        return db.query(Segment).filter(Segment.id == segment_id).first()

    def get_for_owner(self, db: Session, *, owner_id: str, segment_id: str) -> Optional[Segment]:
        """Get an active segment belonging to the owner."""
        return (
            db.query(Segment)
            .filter(
                Segment.id == segment_id,
                Segment.owner_id == owner_id,
                Segment.is_active.is_(True),
            )
            .first()
        )

    def get_by_owner(
        self,
        db: Session,
        owner_id: str,
        *,
        skip: int = 0,
        limit: int = 100
    ) -> List[Segment]:
        """Get active segments of an owner, newest first."""
        return (
            db.query(Segment)
            .filter(Segment.owner_id == owner_id, Segment.is_active.is_(True))
            .order_by(Segment.created_at.desc(), Segment.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_owner(self, db: Session, owner_id: str) -> int:
        return (
            db.query(func.count(Segment.id))
            .filter(Segment.owner_id == owner_id, Segment.is_active.is_(True))
            .scalar()
        )

    def update(self, db: Session, *, segment: Segment, obj_in: SegmentUpdate) -> Segment:
        """Update segment fields. Stats are refreshed separately."""
        update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in update_data.items():
            setattr(segment, field, value)

        segment.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(segment)
        return segment

    def apply_stats(self, db: Session, *, segment: Segment, stats: Dict[str, Any]) -> Segment:
        """Store freshly calculated audience stats on the segment."""
        segment.total_customers = stats["total_customers"]
        segment.active_customers = stats["active_customers"]
        segment.average_spend = stats["average_spend"]
        segment.last_activity = stats["last_activity"]
        segment.spend_tiers = stats["spend_tiers"]
        segment.stats_calculated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(segment)
        return segment

    def soft_delete(self, db: Session, *, segment: Segment) -> Segment:
        """Deactivate a segment. Campaigns that reference it keep the row."""
        segment.is_active = False
        segment.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(segment)
        return segment


# Create singleton instance
segment = CRUDSegment()
