from datetime import datetime, timezone

from app import crud
from app.constants.campaign import DeliveryStatus

from tests.utils.crm import create_customer, create_draft_campaign, create_segment


def _queued_log(db, owner_id, message_id="msg_1"):
    customer = create_customer(db, owner_id, "Ravi", total_spent=1500)
    campaign = create_draft_campaign(db, owner_id, create_segment(db, owner_id))
    return crud.communication_log.create(
        db,
        campaign_id=campaign.id,
        recipient=customer,
        message_id=message_id,
        personalized_subject="Hi Ravi",
    )


def _sent_log(db, owner_id):
    log = _queued_log(db, owner_id)
    return crud.communication_log.mark_sent(
        db, log=log, provider="sendgrid", provider_message_id="sg-1", attempts=1
    )


def test_create_denormalizes_recipient(db_session, owner_id):
    log = _queued_log(db_session, owner_id)

    assert log.status == DeliveryStatus.QUEUED
    assert log.recipient_email == "ravi@example.com"
    assert log.recipient_name == "Ravi"
    assert log.sent_at is None


def test_mark_sent_records_provider(db_session, owner_id):
    log = _sent_log(db_session, owner_id)

    assert log.status == DeliveryStatus.SENT
    assert log.sent_at is not None
    assert log.provider == "sendgrid"
    assert log.attempts == 1


def test_click_before_open_backfills_timestamps(db_session, owner_id):
    _sent_log(db_session, owner_id)

    log, changed = crud.communication_log.track_click(db_session, message_id="msg_1")

    assert changed is True
    assert log.status == DeliveryStatus.CLICKED
    assert log.delivered_at is not None
    assert log.opened_at is not None
    assert log.clicked_at is not None


def test_open_after_click_does_not_regress(db_session, owner_id):
    _sent_log(db_session, owner_id)
    crud.communication_log.track_click(db_session, message_id="msg_1")

    log, changed = crud.communication_log.track_open(db_session, message_id="msg_1")

    assert changed is False
    assert log.status == DeliveryStatus.CLICKED


def test_repeated_opens_are_idempotent(db_session, owner_id):
    _sent_log(db_session, owner_id)

    first, first_changed = crud.communication_log.track_open(db_session, message_id="msg_1")
    opened_at = first.opened_at
    second, second_changed = crud.communication_log.track_open(db_session, message_id="msg_1")

    assert first_changed is True
    assert second_changed is False
    assert second.opened_at == opened_at


def test_tracking_unknown_message_is_harmless(db_session):
    log, changed = crud.communication_log.track_open(db_session, message_id="msg_missing")

    assert log is None
    assert changed is False


def test_failed_rows_ignore_engagement(db_session, owner_id):
    log = _queued_log(db_session, owner_id)
    crud.communication_log.mark_failed(db_session, log=log, error_message="Mailbox unavailable", attempts=3)

    log, changed = crud.communication_log.track_click(db_session, message_id="msg_1")

    assert changed is False
    assert log.status == DeliveryStatus.FAILED
    assert log.clicked_at is None


def test_feedback_counts_as_click_and_first_answer_wins(db_session, owner_id):
    _sent_log(db_session, owner_id)

    crud.communication_log.track_feedback(db_session, message_id="msg_1", answer="yes")
    log, changed = crud.communication_log.track_feedback(db_session, message_id="msg_1", answer="no")

    assert changed is False
    assert log.status == DeliveryStatus.CLICKED
    assert log.log_metadata["feedback"] == "yes"


def test_delivery_receipt_advances_status(db_session, owner_id):
    _sent_log(db_session, owner_id)
    delivered_at = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    log, changed = crud.communication_log.apply_receipt(
        db_session, message_id="msg_1", status=DeliveryStatus.DELIVERED, timestamp=delivered_at
    )

    assert changed is True
    assert log.status == DeliveryStatus.DELIVERED
    assert log.delivered_at.replace(tzinfo=None) == delivered_at.replace(tzinfo=None)


def test_stale_receipt_is_ignored(db_session, owner_id):
    _sent_log(db_session, owner_id)
    crud.communication_log.track_open(db_session, message_id="msg_1")

    log, changed = crud.communication_log.apply_receipt(
        db_session, message_id="msg_1", status=DeliveryStatus.DELIVERED
    )

    assert changed is False
    assert log.status == DeliveryStatus.OPENED


def test_bounce_receipt_marks_failed_unless_engaged(db_session, owner_id):
    _sent_log(db_session, owner_id)

    log, changed = crud.communication_log.apply_receipt(
        db_session,
        message_id="msg_1",
        status=DeliveryStatus.FAILED,
        details={"reason": "Hard bounce"},
    )

    assert changed is True
    assert log.status == DeliveryStatus.FAILED
    assert log.failure_reason == "Hard bounce"
    assert log.log_metadata["receipt"] == {"reason": "Hard bounce"}


def test_bounce_after_open_is_ignored(db_session, owner_id):
    _sent_log(db_session, owner_id)
    crud.communication_log.track_open(db_session, message_id="msg_1")

    log, changed = crud.communication_log.apply_receipt(
        db_session, message_id="msg_1", status=DeliveryStatus.FAILED
    )

    assert changed is False
    assert log.status == DeliveryStatus.OPENED
