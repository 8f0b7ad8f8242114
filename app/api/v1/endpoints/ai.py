# app/api/v1/endpoints/ai.py
"""
AI-assisted campaign copy.

Always answers: when Claude is unavailable or returns something unusable,
template copy for the audience is returned instead.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
import logging

from app.api import deps
from app.core.exceptions import CRMError
from app.core.limiter import limiter
from app.schemas.ai import CampaignContentRequest, CampaignContentResponse
from app.schemas.token import TokenPayload
from app.services.ai_message_generator import (
    TextGenerator,
    get_text_generator,
    parse_generated_content,
)
from app.services.segment_rules import validate_rule_tree

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/ai/campaign-content", response_model=CampaignContentResponse)
@limiter.limit("20/minute")
async def generate_campaign_content(
    request: Request,
    body: CampaignContentRequest,
    current_user: TokenPayload = Depends(deps.get_current_user),
    generator: TextGenerator = Depends(get_text_generator),
):
    """
    Generate a subject and body for a segment.

    The body uses {name}, {total_spent}, {orders_count} and similar tokens
    that are filled in per recipient at send time.
    """
    try:
        validate_rule_tree(body.segment_rules)
    except CRMError as e:
        raise deps.http_error(e)

    content = generator.generate_campaign_content(
        body.segment_rules,
        campaign_name=body.campaign_name,
        segment_description=body.segment_description,
    )
    try:
        subject, message = parse_generated_content(content)
    except ValueError as e:
        logger.error(f"Unusable generated content: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate campaign content",
        )

    return {"subject": subject, "body": message, "content": content}
