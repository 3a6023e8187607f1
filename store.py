from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from models import Budget, Category, Expense, Report


@dataclass(frozen=True)
class ExpenseRow:
    id: str
    category_id: Optional[str]
    category_name: Optional[str]
    amount_cents: int
    description: str
    date: date


class StoreGateway:
    """Data access used by the recalculation and report jobs.

    Statements are built with SQLAlchemy so every value is sent as a bound
    parameter. Errors from the database are not caught here.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_budgets(self, user_id: str) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id)
            .order_by(Budget.created_at, Budget.id)
        )
        return list(self.session.scalars(stmt).all())

    def sum_expenses(self, user_id: str, category_id: str, since: date) -> int:
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            Expense.user_id == user_id,
            Expense.category_id == category_id,
            Expense.date >= since,
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def update_budget_computed(
        self, budget_id: str, spent: int, remaining: int, percentage: str
    ) -> None:
        self.session.execute(
            update(Budget)
            .where(Budget.id == budget_id)
            .values(
                current_spent_cents=spent,
                remaining_cents=remaining,
                percentage_used=percentage,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session="fetch")
        )

    def list_expenses_in_range(
        self, user_id: str, start: date, end: date
    ) -> list[ExpenseRow]:
        stmt = (
            select(
                Expense.id,
                Expense.category_id,
                Category.name.label("category_name"),
                Expense.amount_cents,
                Expense.description,
                Expense.date,
            )
            .outerjoin(Category, Expense.category_id == Category.id)
            .where(Expense.user_id == user_id, Expense.date.between(start, end))
            .order_by(Expense.date, Expense.created_at, Expense.id)
        )
        return [
            ExpenseRow(
                id=row.id,
                category_id=row.category_id,
                category_name=row.category_name,
                amount_cents=row.amount_cents,
                description=row.description,
                date=row.date,
            )
            for row in self.session.execute(stmt)
        ]

    def list_active_user_ids(self) -> list[str]:
        stmt = select(Expense.user_id).distinct().order_by(Expense.user_id)
        return list(self.session.scalars(stmt).all())

    def insert_report(
        self, report_id: str, user_id: str, content: str, generated_at: datetime
    ) -> Report:
        report = Report(
            id=report_id, user_id=user_id, content=content, generated_at=generated_at
        )
        self.session.add(report)
        self.session.flush()
        return report
