import threading
from unittest.mock import MagicMock, patch

import httpx

from app import crud
from app.constants.campaign import CampaignStatus, DeliveryStatus
from app.services.email.providers.sendgrid_provider import SendGridProvider
from app.workers.campaign_email_worker import generate_message_id, process_campaign

from tests.utils.crm import (
    configure_email,
    create_customer,
    create_draft_campaign,
    create_segment,
    create_spenders,
)
from tests.utils.email import FakeProvider, make_gateway


def _dispatch(db, campaign, gateway, **kwargs):
    kwargs.setdefault("delay_ms", 0)
    kwargs.setdefault("sleep", lambda seconds: None)
    process_campaign(db, campaign.id, gateway=gateway, base_url="https://crm.example.com", **kwargs)
    db.expire_all()
    return crud.campaign.get(db, campaign.id)


def _ready_campaign(db, owner_id):
    create_spenders(db, owner_id)
    configure_email(db, owner_id)
    segment = create_segment(db, owner_id)
    return create_draft_campaign(db, owner_id, segment)


def test_each_recipient_gets_a_personalized_log(db_session, owner_id, fake_provider, gateway):
    campaign = _ready_campaign(db_session, owner_id)

    campaign = _dispatch(db_session, campaign, gateway)

    logs = crud.communication_log.get_by_campaign(db_session, campaign.id)
    assert len(logs) == 2
    subjects = sorted(log.personalized_subject for log in logs)
    assert subjects == ["Hi Meera", "Hi Ravi"]
    assert all(log.status == DeliveryStatus.SENT for log in logs)
    assert all(log.provider == "sendgrid" for log in logs)

    bodies = {message.to: message.html for message in fake_provider.sent}
    assert "You spent 1500" in bodies["ravi@example.com"]
    assert "You spent 2000" in bodies["meera@example.com"]
    assert "https://crm.example.com/api/v1/track/open/msg_" in bodies["ravi@example.com"]

    assert campaign.status == CampaignStatus.COMPLETED
    assert campaign.dispatched_count == 2
    assert campaign.sent_count == 2
    assert campaign.started_at is not None
    assert campaign.completed_at is not None


def test_one_failed_recipient_does_not_fail_the_campaign(db_session, owner_id):
    campaign = _ready_campaign(db_session, owner_id)
    provider = FakeProvider(fail_for={"ravi@example.com"})

    campaign = _dispatch(db_session, campaign, make_gateway(provider))

    assert campaign.status == CampaignStatus.COMPLETED
    assert campaign.sent_count == 1
    assert campaign.failed_count == 1

    failed = crud.communication_log.get_by_campaign(
        db_session, campaign.id, status=DeliveryStatus.FAILED
    )
    assert [log.recipient_email for log in failed] == ["ravi@example.com"]
    assert failed[0].failure_reason == "Mailbox unavailable"
    assert failed[0].attempts == 1


def test_invalid_address_is_logged_without_sending(db_session, owner_id, fake_provider, gateway):
    configure_email(db_session, owner_id)
    create_customer(db_session, owner_id, "Broken", email="not-an-email", total_spent=5000)
    create_customer(db_session, owner_id, "Ravi", total_spent=1500)
    campaign = create_draft_campaign(db_session, owner_id, create_segment(db_session, owner_id))

    campaign = _dispatch(db_session, campaign, gateway)

    assert [message.to for message in fake_provider.sent] == ["ravi@example.com"]
    assert campaign.sent_count == 1
    assert campaign.failed_count == 1


def test_recipients_resolved_at_send_time(db_session, owner_id, gateway):
    campaign = _ready_campaign(db_session, owner_id)
    create_customer(db_session, owner_id, "Latecomer", total_spent=3000)

    campaign = _dispatch(db_session, campaign, gateway)

    assert campaign.total_recipients == 2
    assert campaign.dispatched_count == 3
    assert campaign.sent_count == 3


def test_missing_email_account_fails_the_campaign(db_session, owner_id, fake_provider, gateway):
    create_spenders(db_session, owner_id)
    campaign = create_draft_campaign(db_session, owner_id, create_segment(db_session, owner_id))

    campaign = _dispatch(db_session, campaign, gateway)

    assert campaign.status == CampaignStatus.FAILED
    assert "not configured" in campaign.failure_reason
    assert fake_provider.sent == []


def test_deleted_segment_fails_the_campaign(db_session, owner_id, gateway):
    campaign = _ready_campaign(db_session, owner_id)
    crud.segment.soft_delete(db_session, segment=crud.segment.get(db_session, campaign.segment_id))

    campaign = _dispatch(db_session, campaign, gateway)

    assert campaign.status == CampaignStatus.FAILED
    assert campaign.failure_reason == "Segment no longer exists"


def test_only_draft_campaigns_are_dispatched(db_session, owner_id, fake_provider, gateway):
    campaign = _ready_campaign(db_session, owner_id)
    crud.campaign.mark_processing(db_session, campaign=campaign)

    campaign = _dispatch(db_session, campaign, gateway)

    assert campaign.status == CampaignStatus.PROCESSING
    assert fake_provider.sent == []


def test_deadline_stops_the_run(db_session, owner_id, fake_provider, gateway):
    campaign = _ready_campaign(db_session, owner_id)

    campaign = _dispatch(db_session, campaign, gateway, timeout_seconds=1e-9)

    assert fake_provider.sent == []
    assert campaign.status == CampaignStatus.COMPLETED
    assert campaign.sent_count == 0


def test_cancel_stops_before_the_next_write(db_session, owner_id):
    campaign = _ready_campaign(db_session, owner_id)
    cancel_event = threading.Event()

    class CancellingProvider(FakeProvider):
        def send(self, message, config, timeout):
            result = super().send(message, config, timeout)
            cancel_event.set()
            return result

    provider = CancellingProvider()
    campaign = _dispatch(db_session, campaign, make_gateway(provider), cancel_event=cancel_event)

    assert len(provider.sent) == 1
    logs = crud.communication_log.get_by_campaign(db_session, campaign.id)
    assert [log.status for log in logs] == [DeliveryStatus.QUEUED]
    assert campaign.status == CampaignStatus.PROCESSING


def test_message_ids_are_unique():
    first = generate_message_id("cmpn_1", "cust_1")
    second = generate_message_id("cmpn_1", "cust_1")

    assert first.startswith("msg_cmpn_1_cust_1_")
    assert first != second


def test_pauses_between_sends_but_not_after_the_last(db_session, owner_id, fake_provider, gateway):
    create_spenders(db_session, owner_id)
    configure_email(db_session, owner_id)
    segment = create_segment(
        db_session,
        owner_id,
        rules={"combinator": "and", "rules": [{"field": "total_spent", "operator": ">", "value": 100}]},
    )
    campaign = create_draft_campaign(db_session, owner_id, segment)
    pauses = []

    campaign = _dispatch(db_session, campaign, gateway, delay_ms=550, sleep=pauses.append)

    assert len(fake_provider.sent) == 3
    assert pauses == [0.55, 0.55]
    assert campaign.status == CampaignStatus.COMPLETED


def test_provider_timeout_leaves_the_row_failed(db_session, owner_id):
    campaign = _ready_campaign(db_session, owner_id)
    gateway = make_gateway(SendGridProvider())

    with patch("httpx.Client") as mock_client_cls:
        client = MagicMock()
        mock_client_cls.return_value.__enter__.return_value = client
        client.post.side_effect = httpx.ReadTimeout("timed out")

        campaign = _dispatch(db_session, campaign, gateway)

    assert client.post.call_count == 6
    logs = crud.communication_log.get_by_campaign(db_session, campaign.id)
    assert [log.status for log in logs] == [DeliveryStatus.FAILED, DeliveryStatus.FAILED]
    assert all(log.attempts == 3 for log in logs)
    assert "timed out" in logs[0].failure_reason
    assert campaign.status == CampaignStatus.COMPLETED
    assert campaign.failed_count == 2
