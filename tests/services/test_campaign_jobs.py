import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from app.services.campaign_jobs import CampaignJobManager

from tests.utils.jobs import InlineExecutor


def _manager(executor=None):
    return CampaignJobManager(
        session_factory=lambda: _FakeSession(),
        gateway=object(),
        executor=executor or InlineExecutor(),
        sleep=lambda seconds: None,
    )


class _FakeSession:
    closed = False

    def close(self):
        self.closed = True


def test_finished_jobs_are_forgotten():
    manager = _manager()

    with patch("app.workers.campaign_email_worker.process_campaign") as mock_process:
        job = manager.submit("cmpn_1")

    mock_process.assert_called_once()
    assert mock_process.call_args.args[1] == "cmpn_1"
    assert job.running is False
    assert manager.get("cmpn_1") is None


def test_crashing_job_is_contained():
    manager = _manager()

    with patch("app.workers.campaign_email_worker.process_campaign", side_effect=RuntimeError("boom")):
        job = manager.submit("cmpn_1")

    assert job.future.exception() is None


def test_cancel_signals_a_running_job():
    started = threading.Event()
    seen_cancel = threading.Event()

    def slow_dispatch(db, campaign_id, *, cancel_event, **kwargs):
        started.set()
        if cancel_event.wait(timeout=5):
            seen_cancel.set()

    executor = ThreadPoolExecutor(max_workers=1)
    manager = _manager(executor)
    try:
        with patch("app.workers.campaign_email_worker.process_campaign", side_effect=slow_dispatch):
            job = manager.submit("cmpn_1")
            assert started.wait(timeout=5)
            assert manager.submit("cmpn_1") is job

            assert manager.cancel("cmpn_1") is True

        assert seen_cancel.is_set()
        assert job.running is False
    finally:
        manager.shutdown(wait_for_jobs=True)


def test_cancel_without_a_job():
    assert _manager().cancel("cmpn_missing") is False
