import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import sessionmaker

from database import SessionLocal, session_scope
from job_queue import Batch
from models import JobType
from schemas import JobMessage
from services import BudgetRecalculator, ReportGenerator

logger = logging.getLogger(__name__)

_KNOWN_TYPES = {job_type.value for job_type in JobType}


@dataclass
class BatchResult:
    received: int = 0
    processed: int = 0
    failed: int = 0
    ignored: int = 0


class QueueConsumer:
    """Runs queued recalculation and report jobs.

    Delivery is at-most-once: a message that fails is logged and still
    acknowledged with the rest of its batch.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self.session_factory = session_factory or SessionLocal

    def process_batch(self, batch: Batch, now: Optional[datetime] = None) -> BatchResult:
        result = BatchResult(received=len(batch.messages))
        for message in batch.messages:
            try:
                handled = self.handle(message.body, now=now)
            except Exception:
                result.failed += 1
                logger.exception(f"queue_message_failed: message_id={message.id}")
                continue
            if handled:
                result.processed += 1
            else:
                result.ignored += 1

        batch.ack_all()
        logger.info(
            f"queue_batch: received={result.received} processed={result.processed} "
            f"failed={result.failed} ignored={result.ignored}"
        )
        return result

    def handle(self, body: str, now: Optional[datetime] = None) -> bool:
        """Run the job described by ``body``. Returns False for unknown job types."""
        data = json.loads(body)
        if not isinstance(data, dict):
            return False
        job_type = data.get("type")
        if not isinstance(job_type, str) or job_type not in _KNOWN_TYPES:
            return False

        job = JobMessage.model_validate(data)
        job_type = JobType(job_type)
        with session_scope(self.session_factory) as session:
            if job_type is JobType.recalculate_budget:
                BudgetRecalculator(session).recalculate(job.user_id, now=now)
            elif job_type is JobType.generate_monthly_report:
                ReportGenerator(session).generate_monthly_report(job.user_id, now=now)
        return True
