# app/workers/campaign_email_worker.py
"""
Dispatch loop for a single email campaign.

Production features:
- Segment re-resolved at send time (the audience may have changed since creation)
- One communication log row per recipient, written before the send
- Personalization and open/click tracking instrumentation
- Retry with backoff inside the gateway; a failed recipient never stops the run
- Fixed delay between sends to stay under provider rate limits
- Overall deadline and cooperative cancellation

Run by CampaignJobManager on a worker thread with its own session.
"""

import logging
import secrets
import threading
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app import crud
from app.constants.campaign import CampaignStatus, DeliveryStatus
from app.core.config import settings
from app.core.exceptions import (
    ConfigurationRequiredError,
    CRMError,
    DeliveryError,
    NotFoundError,
)
from app.services.campaign_analytics import refresh_campaign_stats
from app.services.email.gateway import EmailGateway, get_email_gateway, is_valid_email
from app.services.email.provider_interface import OutgoingEmail
from app.services.email.templating import customer_variables, personalize, render_email

logger = logging.getLogger(__name__)


def generate_message_id(campaign_id: str, customer_id: str) -> str:
    return f"msg_{campaign_id}_{customer_id}_{secrets.token_hex(6)}"


def process_campaign(
    db: Session,
    campaign_id: str,
    *,
    gateway: Optional[EmailGateway] = None,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
    delay_ms: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
    base_url: Optional[str] = None,
) -> None:
    """
    Send a draft campaign to every customer currently in its segment.

    Steps:
    1. Load segment, email account and backend; any problem fails the campaign
    2. Resolve recipients and move the campaign to processing
    3. For each recipient: log row, personalize, render, send, record outcome
    4. Recompute stats from the log and mark the campaign completed

    A cancelled run stops where it is and leaves the campaign untouched.
    """
    gateway = gateway or get_email_gateway()
    cancel_event = cancel_event or threading.Event()
    # Waiting on the cancel event lets a cancel cut the pause short
    pause = sleep or cancel_event.wait
    delay_seconds = (settings.EMAIL_DELAY_MS if delay_ms is None else delay_ms) / 1000.0
    deadline = time.monotonic() + (timeout_seconds or settings.CAMPAIGN_DISPATCH_TIMEOUT_SECONDS)

    logger.info(f"Processing campaign: {campaign_id}")

    campaign = crud.campaign.get(db, campaign_id)
    if not campaign:
        logger.error(f"Campaign {campaign_id} not found")
        return

    if campaign.status != CampaignStatus.DRAFT:
        logger.warning(f"Campaign {campaign_id} status is {campaign.status}, skipping")
        return

    try:
        segment = crud.segment.get_for_owner(
            db, owner_id=campaign.owner_id, segment_id=campaign.segment_id
        )
        if segment is None:
            raise NotFoundError("Segment no longer exists")

        account = crud.email_account.get_by_owner(db, campaign.owner_id)
        if account is None or not account.is_configured:
            raise ConfigurationRequiredError("Email settings not configured")
        provider = gateway.resolve_provider(account)

        recipients = crud.customer.get_matching(
            db, owner_id=campaign.owner_id, rules=segment.rules
        )
    except CRMError as e:
        logger.error(f"Campaign {campaign_id} setup failed: {e.message}")
        crud.campaign.mark_failed(db, campaign=campaign, error=e.message)
        return

    if cancel_event.is_set():
        logger.info(f"Campaign {campaign_id} cancelled before sending")
        return

    crud.campaign.mark_processing(db, campaign=campaign)
    crud.campaign.set_dispatched_count(db, campaign=campaign, count=len(recipients))
    logger.info(
        f"Campaign {campaign_id}: {len(recipients)} recipients via {provider.code} "
        f"(snapshot at creation: {campaign.total_recipients})"
    )

    sent_count = 0
    failed_count = 0

    try:
        for index, customer in enumerate(recipients):
            if cancel_event.is_set():
                logger.info(f"Campaign {campaign_id} cancelled after {index} recipients")
                return
            if time.monotonic() >= deadline:
                logger.warning(
                    f"Campaign {campaign_id} hit its dispatch deadline, "
                    f"{len(recipients) - index} recipients not sent"
                )
                break

            message_id = generate_message_id(campaign.id, customer.id)

            if not is_valid_email(customer.email):
                crud.communication_log.create(
                    db,
                    campaign_id=campaign.id,
                    recipient=customer,
                    message_id=message_id,
                    status=DeliveryStatus.FAILED,
                    failure_reason=f"Invalid email: {customer.email}",
                )
                failed_count += 1
                continue

            variables = customer_variables(customer)
            subject = personalize(campaign.subject, variables)
            body = personalize(campaign.body, variables)

            log = crud.communication_log.create(
                db,
                campaign_id=campaign.id,
                recipient=customer,
                message_id=message_id,
                personalized_subject=subject,
            )

            html, text = render_email(subject, body, message_id=message_id, base_url=base_url)
            message = OutgoingEmail(
                to=customer.email,
                to_name=customer.name,
                subject=subject,
                html=html,
                text=text,
                from_email=account.from_email,
                from_name=account.from_name,
                message_id=message_id,
            )

            try:
                result = gateway.send(message, account, provider=provider)
            except DeliveryError as e:
                if cancel_event.is_set():
                    return
                crud.communication_log.mark_failed(
                    db,
                    log=log,
                    error_message=e.message,
                    attempts=e.attempts,
                    provider=e.provider,
                )
                failed_count += 1
                logger.error(f"Failed to send to {customer.email}: {e.message}")
            else:
                if cancel_event.is_set():
                    return
                crud.communication_log.mark_sent(
                    db,
                    log=log,
                    provider=result.provider,
                    provider_message_id=result.provider_message_id,
                    attempts=result.attempts,
                    delivered=result.delivered,
                )
                sent_count += 1
                logger.debug(f"Sent to {customer.email}")

            # Rate limiting between sends
            if index < len(recipients) - 1:
                pause(delay_seconds)

        if cancel_event.is_set():
            return

        refresh_campaign_stats(db, campaign)
        crud.campaign.mark_completed(db, campaign=campaign)
    except Exception as e:
        logger.error(f"Campaign {campaign_id} dispatch crashed: {e}", exc_info=True)
        db.rollback()
        if cancel_event.is_set():
            return
        campaign = crud.campaign.get(db, campaign_id)
        if campaign and campaign.status == CampaignStatus.PROCESSING:
            refresh_campaign_stats(db, campaign)
            crud.campaign.mark_failed(db, campaign=campaign, error=f"Dispatch error: {e}")
        return

    logger.info(f"Campaign {campaign_id} complete: {sent_count} sent, {failed_count} failed")
