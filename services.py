from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from models import Budget, Category, Expense, Report, new_id
from money import cents_to_units, percentage, to_cents
from periods import Period, parse_budget_period, previous_month_window, resolve_window
from schemas import BudgetIn, CategoryIn, ExpenseIn, ReportCategory, ReportContent
from store import StoreGateway

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


def current_time() -> datetime:
    return datetime.now(ZoneInfo(get_settings().timezone))


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _iso_timestamp(moment: datetime) -> str:
    return _as_naive_utc(moment).isoformat(timespec="milliseconds") + "Z"


def _locale_date(moment: datetime) -> str:
    return f"{moment.month}/{moment.day}/{moment.year}"


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.name) == name.lower(),
            )
        )
        if existing:
            raise ConflictError("Category with this name already exists")
        category = Category(user_id=self.user_id, name=name, color=data.color)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class ExpenseService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: ExpenseIn) -> Expense:
        if data.category_id is not None:
            CategoryService(self.session, self.user_id).get(data.category_id)
        expense = Expense(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=to_cents(data.amount),
            description=data.description.strip(),
            date=data.date,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def get(self, expense_id: str) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def list(self, period: Period) -> list[Expense]:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(period.start, period.end),
            )
            .order_by(Expense.date.desc(), Expense.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def summary(self, period: Period) -> list[dict[str, object]]:
        total = func.sum(Expense.amount_cents).label("total")
        stmt = (
            select(Category.id, Category.name, Category.color, total)
            .join(Category, Expense.category_id == Category.id)
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(period.start, period.end),
            )
            .group_by(Category.id, Category.name, Category.color)
            .order_by(total.desc())
        )
        return [
            {
                "id": row.id,
                "name": row.name,
                "color": row.color,
                "total": cents_to_units(int(row.total or 0)),
            }
            for row in self.session.execute(stmt)
        ]

    def attach_receipt(self, expense_id: str, url: str) -> Expense:
        expense = self.get(expense_id)
        expense.receipt_url = url
        self.session.commit()
        return expense


class BudgetService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: BudgetIn) -> Budget:
        period = parse_budget_period(data.period)
        CategoryService(self.session, self.user_id).get(data.category_id)
        amount_cents = to_cents(data.amount)
        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=amount_cents,
            period=period,
            current_spent_cents=0,
            remaining_cents=amount_cents,
            percentage_used="0.0",
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id)
        )
        return list(self.session.scalars(stmt).all())


class ReportService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Report]:
        stmt = (
            select(Report)
            .where(Report.user_id == self.user_id)
            .order_by(Report.generated_at.desc(), Report.id)
        )
        return list(self.session.scalars(stmt).all())


class BudgetRecalculator:
    """Rewrites the derived fields of every budget a user owns.

    Budgets are handled one after another; the first failing statement aborts
    the rest for that user.
    """

    def __init__(self, session: Session) -> None:
        self.store = StoreGateway(session)

    def recalculate(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or current_time()
        budgets = self.store.list_budgets(user_id)
        for budget in budgets:
            window = resolve_window(budget.period, now)
            spent = self.store.sum_expenses(
                user_id, budget.category_id, window.start.date()
            )
            remaining = budget.amount_cents - spent
            used = percentage(spent, budget.amount_cents)
            self.store.update_budget_computed(budget.id, spent, remaining, used)
        logger.info(
            f"budget_recalculated: user_id={user_id} budgets={len(budgets)}"
        )
        return len(budgets)


class ReportGenerator:
    def __init__(self, session: Session) -> None:
        self.store = StoreGateway(session)

    def build_content(self, user_id: str, now: datetime) -> ReportContent:
        window = previous_month_window(now)
        rows = self.store.list_expenses_in_range(
            user_id, window.start.date(), window.end.date()
        )
        total_cents = sum(row.amount_cents for row in rows)

        by_category: dict[str, int] = {}
        for row in rows:
            label = row.category_name or UNCATEGORIZED
            by_category[label] = by_category.get(label, 0) + row.amount_cents

        return ReportContent(
            user_id=user_id,
            period=f"{_locale_date(window.start)} - {_locale_date(window.end)}",
            total_spent=cents_to_units(total_cents),
            categories=[
                ReportCategory(
                    name=name,
                    amount=cents_to_units(amount),
                    percentage=percentage(amount, total_cents),
                )
                for name, amount in by_category.items()
            ],
            generated_at=_iso_timestamp(now),
        )

    def generate_monthly_report(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Report:
        now = now or current_time()
        content = self.build_content(user_id, now)
        report = self.store.insert_report(
            new_id("report"),
            user_id,
            json.dumps(content.model_dump(by_alias=True)),
            _as_naive_utc(now),
        )
        logger.info(f"report_generated: report_id={report.id} user_id={user_id}")
        return report
