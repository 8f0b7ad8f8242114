# app/api/v1/endpoints/segments.py
"""
API endpoints for customer segments.

- CRUD on owner-scoped segments (soft delete)
- Audience estimate and preview for unsaved rule trees
- Cached stats refresh
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import logging

from app import crud
from app.api import deps
from app.core.exceptions import CRMError
from app.core.limiter import limiter
from app.db.session import get_db
from app.schemas.segment import (
    EstimateResponse,
    RulesRequest,
    SegmentCreate,
    SegmentPreview,
    SegmentResponse,
    SegmentUpdate,
)
from app.schemas.token import TokenPayload
from app.services import segment_estimation
from app.services.segment_rules import compile_rule_tree

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_segment_or_404(db: Session, owner_id: str, segment_id: str):
    segment = crud.segment.get_for_owner(db, owner_id=owner_id, segment_id=segment_id)
    if not segment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Segment not found")
    return segment


@router.post("/segments", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_segment(
    request: Request,
    segment_in: SegmentCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Create a segment and calculate its audience stats.

    The rule tree must contain at least one rule on a supported field, and
    every value must suit its field.
    """
    try:
        compile_rule_tree(segment_in.rules)
    except CRMError as e:
        raise deps.http_error(e)

    segment = crud.segment.create(db, owner_id=current_user.owner_id, obj_in=segment_in)
    logger.info(f"Segment {segment.id} created by {current_user.sub}")
    return segment_estimation.refresh_segment_stats(db, segment)


@router.get("/segments", response_model=List[SegmentResponse])
@limiter.limit("60/minute")
async def list_segments(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Get the owner's active segments, newest first."""
    return crud.segment.get_by_owner(db, current_user.owner_id, skip=skip, limit=limit)


@router.post("/segments/estimate", response_model=EstimateResponse)
@limiter.limit("60/minute")
async def estimate_audience(
    request: Request,
    body: RulesRequest,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Count the customers a rule tree would match right now."""
    try:
        count = segment_estimation.estimate(db, current_user.owner_id, body.rules)
    except CRMError as e:
        raise deps.http_error(e)
    return {"count": count}


@router.post("/segments/preview", response_model=SegmentPreview)
@limiter.limit("30/minute")
async def preview_audience(
    request: Request,
    body: RulesRequest,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Sample customers and demographic breakdown for a rule tree."""
    try:
        return segment_estimation.preview(db, current_user.owner_id, body.rules)
    except CRMError as e:
        raise deps.http_error(e)


@router.get("/segments/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return _get_segment_or_404(db, current_user.owner_id, segment_id)


@router.put("/segments/{segment_id}", response_model=SegmentResponse)
@limiter.limit("30/minute")
async def update_segment(
    request: Request,
    segment_id: str,
    segment_in: SegmentUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Update a segment. Stats are recalculated on every update."""
    segment = _get_segment_or_404(db, current_user.owner_id, segment_id)

    if segment_in.rules is not None:
        try:
            compile_rule_tree(segment_in.rules)
        except CRMError as e:
            raise deps.http_error(e)

    segment = crud.segment.update(db, segment=segment, obj_in=segment_in)
    return segment_estimation.refresh_segment_stats(db, segment)


@router.delete("/segments/{segment_id}")
async def delete_segment(
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Soft-delete a segment. Existing campaigns keep their reference."""
    segment = _get_segment_or_404(db, current_user.owner_id, segment_id)
    crud.segment.soft_delete(db, segment=segment)
    return {"id": segment_id, "message": "Segment deleted successfully"}


@router.post("/segments/{segment_id}/refresh-stats", response_model=SegmentResponse)
@limiter.limit("10/minute")
async def refresh_segment_stats(
    request: Request,
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    segment = _get_segment_or_404(db, current_user.owner_id, segment_id)
    return segment_estimation.refresh_segment_stats(db, segment)
