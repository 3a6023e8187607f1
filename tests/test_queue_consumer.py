import json
import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from job_queue import JobQueue, enqueue_budget_recalculation, enqueue_monthly_report
from models import Budget, Report
from scheduler import SchedulerManager
from schemas import BudgetIn, CategoryIn, ExpenseIn
from services import BudgetService, CategoryService, ExpenseService
from worker import QueueConsumer


def _factory(tmp_path) -> sessionmaker:
    engine = create_engine(f"sqlite:///{tmp_path / 'queue.db'}")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _seed_budget(session: Session, user_id: str = "u1") -> Budget:
    food = CategoryService(session, user_id).create(CategoryIn(name="Food"))
    budget = BudgetService(session, user_id).create(
        BudgetIn(category_id=food.id, amount=Decimal("100"), period="monthly")
    )
    ExpenseService(session, user_id).create(
        ExpenseIn(amount=Decimal("40"), category_id=food.id, date=date(2024, 5, 2))
    )
    return budget


def test_malformed_message_is_logged_and_batch_still_acknowledged(
    tmp_path, caplog
) -> None:
    factory = _factory(tmp_path)
    with factory() as session:
        budget = _seed_budget(session)
        queue = JobQueue(session)
        queue.send_raw("{not json")
        enqueue_budget_recalculation(session, "u1")
        assert queue.pending_count() == 2

        batch = queue.receive_batch(10)
        with caplog.at_level(logging.INFO):
            result = QueueConsumer(factory).process_batch(
                batch, now=datetime(2024, 5, 20, 12, 0)
            )

        assert (result.received, result.processed, result.failed) == (2, 1, 1)
        assert batch.acked
        assert queue.pending_count() == 0
        assert "queue_message_failed" in caplog.text

    with factory() as session:
        budget = session.get(Budget, budget.id)
        assert budget.current_spent_cents == 4_000
        assert budget.remaining_cents == 6_000
        assert budget.percentage_used == "40.0"


def test_unknown_job_types_are_ignored(tmp_path) -> None:
    factory = _factory(tmp_path)
    with factory() as session:
        queue = JobQueue(session)
        queue.send({"type": "PROCESS_RECORDING", "meetingId": "m1"})
        queue.send({"userId": "u1"})
        queue.send({"type": ["RECALCULATE_BUDGET"], "userId": "u1"})
        queue.send({"type": {"k": 1}})
        queue.send_raw(json.dumps(["GENERATE_MONTHLY_REPORT", "u1"]))
        queue.send_raw("42")

        result = QueueConsumer(factory).process_batch(queue.receive_batch(10))

        assert (result.ignored, result.failed, result.processed) == (6, 0, 0)
        assert queue.pending_count() == 0
        assert session.scalars(select(Report)).all() == []


def test_known_job_without_user_fails_without_stopping_the_batch(tmp_path) -> None:
    factory = _factory(tmp_path)
    with factory() as session:
        queue = JobQueue(session)
        queue.send({"type": "GENERATE_MONTHLY_REPORT"})
        queue.send({"type": "RECALCULATE_BUDGET", "userId": ["u1"]})
        enqueue_monthly_report(session, "u1")

        result = QueueConsumer(factory).process_batch(
            queue.receive_batch(10), now=datetime(2024, 6, 1)
        )

        assert (result.failed, result.processed) == (2, 1)
        assert queue.pending_count() == 0

    with factory() as session:
        reports = session.scalars(select(Report)).all()
        assert [r.user_id for r in reports] == ["u1"]


def test_receive_batch_respects_size_and_order(tmp_path) -> None:
    factory = _factory(tmp_path)
    with factory() as session:
        queue = JobQueue(session)
        for user_id in ("u1", "u2", "u3"):
            enqueue_monthly_report(session, user_id)

        batch = queue.receive_batch(2)
        users = [json.loads(m.body)["userId"] for m in batch.messages]
        assert users == ["u1", "u2"]

        batch.ack_all()
        remaining = queue.receive_batch(10)
        assert [json.loads(m.body)["userId"] for m in remaining.messages] == ["u3"]


def test_scheduler_drains_queue_and_enqueues_monthly_reports(tmp_path) -> None:
    factory = _factory(tmp_path)
    with factory() as session:
        _seed_budget(session, "u1")
        _seed_budget(session, "u2")

    manager = SchedulerManager(session_factory=factory)
    assert manager.drain_once() is None
    assert manager.enqueue_monthly_reports() == 2

    result = manager.drain_once()
    assert result is not None
    assert result.processed == 2

    with factory() as session:
        assert JobQueue(session).pending_count() == 0
        reports = session.scalars(select(Report).order_by(Report.user_id)).all()
        assert [r.user_id for r in reports] == ["u1", "u2"]
