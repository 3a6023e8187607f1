import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import SessionLocal, session_scope
from job_queue import JobQueue, enqueue_monthly_report
from store import StoreGateway
from worker import BatchResult, QueueConsumer


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        settings = get_settings()
        self.settings = settings
        self.session_factory = session_factory or SessionLocal
        self.consumer = QueueConsumer(self.session_factory)
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def drain_once(self, source: str = "manual") -> Optional[BatchResult]:
        with session_scope(self.session_factory) as session:
            batch = JobQueue(session).receive_batch(self.settings.queue_batch_size)
            if not batch.messages:
                return None
            logger.info(f"queue_drain: source={source} messages={len(batch.messages)}")
            return self.consumer.process_batch(batch)

    def enqueue_monthly_reports(self, source: str = "manual") -> int:
        with session_scope(self.session_factory) as session:
            user_ids = StoreGateway(session).list_active_user_ids()
            for user_id in user_ids:
                enqueue_monthly_report(session, user_id)
        logger.info(f"monthly_reports_enqueued: source={source} users={len(user_ids)}")
        return len(user_ids)

    def start(self) -> None:
        self.drain_once("startup")

        trigger = IntervalTrigger(seconds=self.settings.queue_poll_secs)
        self.scheduler.add_job(
            self.drain_once,
            trigger,
            args=["interval"],
            id="queue_drain",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        trigger = CronTrigger(day=1, hour=0, minute=30)
        self.scheduler.add_job(
            self.enqueue_monthly_reports,
            trigger,
            args=["monthly_00:30"],
            id="monthly_reports",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with queue drain every {self.settings.queue_poll_secs}s "
            "and monthly reports on day 1 at 00:30"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
