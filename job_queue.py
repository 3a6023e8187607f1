import json
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from models import JobType, QueueMessage


@dataclass(frozen=True)
class ReceivedMessage:
    id: int
    body: str


@dataclass
class Batch:
    """Messages handed to one consumer run. Acknowledgement is all-or-nothing."""

    session: Session
    messages: list[ReceivedMessage] = field(default_factory=list)
    acked: bool = False

    def ack_all(self) -> None:
        if self.acked:
            return
        ids = [message.id for message in self.messages]
        if ids:
            self.session.execute(delete(QueueMessage).where(QueueMessage.id.in_(ids)))
            self.session.commit()
        self.acked = True


class JobQueue:
    def __init__(self, session: Session) -> None:
        self.session = session

    def send(self, payload: dict[str, object]) -> QueueMessage:
        return self.send_raw(json.dumps(payload))

    def send_raw(self, body: str) -> QueueMessage:
        message = QueueMessage(body=body)
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message

    def receive_batch(self, max_messages: int = 10) -> Batch:
        stmt = select(QueueMessage).order_by(QueueMessage.id).limit(max_messages)
        messages = [
            ReceivedMessage(id=row.id, body=row.body)
            for row in self.session.scalars(stmt).all()
        ]
        return Batch(session=self.session, messages=messages)

    def pending_count(self) -> int:
        return int(
            self.session.execute(select(func.count(QueueMessage.id))).scalar_one()
            or 0
        )


def enqueue_budget_recalculation(session: Session, user_id: str) -> QueueMessage:
    return JobQueue(session).send(
        {"type": JobType.recalculate_budget.value, "userId": user_id}
    )


def enqueue_monthly_report(session: Session, user_id: str) -> QueueMessage:
    return JobQueue(session).send(
        {"type": JobType.generate_monthly_report.value, "userId": user_id}
    )
