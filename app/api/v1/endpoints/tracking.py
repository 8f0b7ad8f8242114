# app/api/v1/endpoints/tracking.py
"""
Open/click tracking and provider delivery receipts.

The pixel, click, view and feedback endpoints are public: they are hit from
inside emails. They always answer with their pixel/redirect/page, even when
the message id is unknown or tracking fails.
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from app import crud
from app.api import deps
from app.db.session import get_db
from app.schemas.communication_log import DeliveryReceipt, DeliveryReceiptResponse
from app.services.campaign_analytics import refresh_campaign_stats
from app.services.email.templating import customer_variables, personalize, render_email

logger = logging.getLogger(__name__)
router = APIRouter()

# 1x1 transparent PNG
TRANSPARENT_PIXEL = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
    "0000000a49444154789c6300010000050001ad7a0ac00000000049454e44ae426082"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}

FEEDBACK_ANSWERS = ("yes", "no")


def _refresh_campaign(db: Session, campaign_id: str) -> None:
    campaign = crud.campaign.get(db, campaign_id)
    if campaign:
        refresh_campaign_stats(db, campaign)


def _page(title: str, message: str) -> HTMLResponse:
    return HTMLResponse(
        f"<!DOCTYPE html><html><head><meta charset='utf-8'><title>{html.escape(title)}</title></head>"
        f"<body style='font-family: Arial, sans-serif; text-align: center; padding: 48px;'>"
        f"<h2>{html.escape(title)}</h2><p>{html.escape(message)}</p></body></html>",
        headers=NO_CACHE_HEADERS,
    )


@router.get("/track/open/{message_id}")
async def track_open(message_id: str, db: Session = Depends(get_db)):
    """
    Track email open via 1x1 transparent tracking pixel.

    Returns a 1x1 transparent PNG image.
    """
    try:
        log, changed = crud.communication_log.track_open(db, message_id=message_id)
        if log is None:
            logger.warning(f"Open tracked for unknown message {message_id}")
        elif changed:
            logger.info(f"First open for message {message_id}")
            _refresh_campaign(db, log.campaign_id)
    except Exception as e:
        logger.error(f"Error tracking open for {message_id}: {e}", exc_info=True)

    # Always return pixel even if tracking fails
    return Response(content=TRANSPARENT_PIXEL, media_type="image/png", headers=NO_CACHE_HEADERS)


@router.get("/track/click/{message_id}")
async def track_click(message_id: str, url: Optional[str] = None, db: Session = Depends(get_db)):
    """
    Track link click and redirect to target URL.

    Usage: links in emails are rewritten to
    /track/click/{message_id}?url={target_url}
    """
    try:
        log, changed = crud.communication_log.track_click(db, message_id=message_id)
        if log is None:
            logger.warning(f"Click tracked for unknown message {message_id}")
        elif changed:
            logger.info(f"First click for message {message_id}")
            _refresh_campaign(db, log.campaign_id)
    except Exception as e:
        logger.error(f"Error tracking click for {message_id}: {e}", exc_info=True)

    if url and url.lower().startswith(("http://", "https://")):
        return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    return JSONResponse({"message": "Click tracked"})


@router.get("/track/view/{message_id}", response_class=HTMLResponse)
async def view_online(message_id: str, db: Session = Depends(get_db)):
    """Browser copy of an email. Counts as an open."""
    try:
        log, changed = crud.communication_log.track_view(db, message_id=message_id)
        if changed:
            _refresh_campaign(db, log.campaign_id)
    except Exception as e:
        logger.error(f"Error tracking view for {message_id}: {e}", exc_info=True)
        log = None

    if log is None or log.campaign is None:
        return _page("Email not found", "This email is no longer available.")

    variables = customer_variables(log.customer) if log.customer else {}
    subject = personalize(log.campaign.subject, variables)
    body = personalize(log.campaign.body, variables)
    rendered, _ = render_email(subject, body)
    return HTMLResponse(rendered, headers=NO_CACHE_HEADERS)


@router.get("/track/feedback/{message_id}/{answer}", response_class=HTMLResponse)
async def record_feedback(message_id: str, answer: str, db: Session = Depends(get_db)):
    """Yes/no feedback button. Counts as a click."""
    answer = answer.lower()
    if answer not in FEEDBACK_ANSWERS:
        return _page("Unknown answer", "Please use the buttons in the email.")

    try:
        log, changed = crud.communication_log.track_feedback(db, message_id=message_id, answer=answer)
        if log is None:
            logger.warning(f"Feedback for unknown message {message_id}")
        elif changed:
            _refresh_campaign(db, log.campaign_id)
    except Exception as e:
        logger.error(f"Error recording feedback for {message_id}: {e}", exc_info=True)

    return _page("Thank you!", "Your feedback has been recorded.")


@router.post("/communication-logs/delivery-receipt", response_model=DeliveryReceiptResponse)
async def delivery_receipt(
    receipt: DeliveryReceipt,
    db: Session = Depends(get_db),
    api_key: str = Depends(deps.get_internal_api_key),
):
    """
    Delivery status callback from an email provider.

    Status only moves forward; stale or repeated receipts are acknowledged
    without changing anything.
    """
    details = {"reason": receipt.reason} if receipt.reason else None
    log, changed = crud.communication_log.apply_receipt(
        db,
        message_id=receipt.message_id,
        status=receipt.status,
        timestamp=receipt.timestamp,
        details=details,
    )
    if log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")

    if changed:
        _refresh_campaign(db, log.campaign_id)
    return {"message_id": log.message_id, "status": log.status, "updated": changed}
