# app/services/campaign_jobs.py
"""
Background dispatch jobs, one per campaign.

The manager owns a thread pool and a registry of running jobs keyed by
campaign id. Each job gets its own database session and a cancel event that
the dispatch loop checks before every write it makes for a recipient.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.email.gateway import EmailGateway, get_email_gateway

logger = logging.getLogger(__name__)

CANCEL_WAIT_SECONDS = 5.0


@dataclass
class CampaignJob:
    campaign_id: str
    future: Future
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def running(self) -> bool:
        return not self.future.done()


class CampaignJobManager:
    """Submits, tracks and cancels campaign dispatch jobs."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        gateway: Optional[EmailGateway] = None,
        executor: Optional[Executor] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.DISPATCH_MAX_WORKERS, thread_name_prefix="campaign-dispatch"
        )
        self._sleep = sleep
        self._jobs: Dict[str, CampaignJob] = {}
        self._lock = threading.Lock()

    @property
    def gateway(self) -> EmailGateway:
        if self._gateway is None:
            self._gateway = get_email_gateway()
        return self._gateway

    def submit(self, campaign_id: str) -> CampaignJob:
        """Start dispatching a campaign. A job already running is returned as is."""
        with self._lock:
            existing = self._jobs.get(campaign_id)
            if existing and existing.running:
                logger.warning(f"Dispatch for campaign {campaign_id} already running")
                return existing

        cancel_event = threading.Event()
        future = self._executor.submit(self._run, campaign_id, cancel_event)
        job = CampaignJob(campaign_id=campaign_id, future=future, cancel_event=cancel_event)
        with self._lock:
            self._jobs[campaign_id] = job
        future.add_done_callback(lambda _: self._forget(job))
        return job

    def _forget(self, job: CampaignJob) -> None:
        with self._lock:
            if self._jobs.get(job.campaign_id) is job:
                del self._jobs[job.campaign_id]

    def _run(self, campaign_id: str, cancel_event: threading.Event) -> None:
        # Imported here: the worker module pulls in the crud layer
        from app.workers.campaign_email_worker import process_campaign

        db = self._session_factory()
        try:
            process_campaign(
                db,
                campaign_id,
                gateway=self.gateway,
                cancel_event=cancel_event,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error(f"Dispatch job for campaign {campaign_id} crashed: {e}", exc_info=True)
        finally:
            db.close()

    def get(self, campaign_id: str) -> Optional[CampaignJob]:
        with self._lock:
            return self._jobs.get(campaign_id)

    def cancel(self, campaign_id: str, wait_seconds: float = CANCEL_WAIT_SECONDS) -> bool:
        """
        Signal a running job to stop and wait briefly for it to exit.

        Returns:
            True if a running job was signalled
        """
        job = self.get(campaign_id)
        if job is None or not job.running:
            return False
        job.cancel_event.set()
        job.future.cancel()  # only succeeds if the job never started
        done, _ = wait([job.future], timeout=wait_seconds)
        if not done:
            logger.warning(f"Dispatch for campaign {campaign_id} still running after cancel")
        return True

    def shutdown(self, wait_for_jobs: bool = False) -> None:
        """Cancel everything and stop the pool."""
        with self._lock:
            jobs = list(self._jobs.values())
        for job in jobs:
            job.cancel_event.set()
        self._executor.shutdown(wait=wait_for_jobs)


_manager: Optional[CampaignJobManager] = None


def get_job_manager() -> CampaignJobManager:
    """FastAPI dependency returning the process-wide job manager."""
    global _manager
    if _manager is None:
        _manager = CampaignJobManager()
    return _manager


def shutdown_job_manager() -> None:
    global _manager
    if _manager is not None:
        _manager.shutdown()
        _manager = None
