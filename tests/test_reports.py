import json
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Report
from schemas import CategoryIn, ExpenseIn, ReportContent
from services import CategoryService, ExpenseService, ReportGenerator, ReportService


def _expense(session: Session, user_id: str, category_id, amount: str, day: date):
    return ExpenseService(session, user_id).create(
        ExpenseIn(amount=Decimal(amount), category_id=category_id, date=day)
    )


def test_monthly_report_groups_previous_month_by_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        a = CategoryService(session, "u1").create(CategoryIn(name="A"))
        b = CategoryService(session, "u1").create(CategoryIn(name="B"))
        _expense(session, "u1", a.id, "50", date(2024, 5, 1))
        _expense(session, "u1", b.id, "30", date(2024, 5, 15))
        _expense(session, "u1", a.id, "12", date(2024, 4, 30))
        _expense(session, "u1", a.id, "20", date(2024, 6, 1))
        _expense(session, "u1", b.id, "7", date(2024, 6, 2))
        other = CategoryService(session, "u2").create(CategoryIn(name="A"))
        _expense(session, "u2", other.id, "999", date(2024, 5, 5))

        report = ReportGenerator(session).generate_monthly_report(
            "u1", now=datetime(2024, 6, 1, 8, 0)
        )

        content = json.loads(report.content)
        assert content == {
            "userId": "u1",
            "period": "5/1/2024 - 6/1/2024",
            "totalSpent": 100,
            "categories": [
                {"name": "A", "amount": 70, "percentage": "70.0"},
                {"name": "B", "amount": 30, "percentage": "30.0"},
            ],
            "generatedAt": "2024-06-01T08:00:00.000Z",
        }
        ReportContent.model_validate(content)
        assert report.id.startswith("report-")
        assert report.generated_at == datetime(2024, 6, 1, 8, 0)


def test_expenses_without_category_are_uncategorized() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, "u1").create(CategoryIn(name="Food"))
        _expense(session, "u1", None, "10", date(2024, 5, 3))
        _expense(session, "u1", food.id, "20", date(2024, 5, 4))
        _expense(session, "u1", None, "10", date(2024, 5, 5))

        report = ReportGenerator(session).generate_monthly_report(
            "u1", now=datetime(2024, 5, 20)
        )
        categories = json.loads(report.content)["categories"]
        assert categories == [
            {"name": "Uncategorized", "amount": 20, "percentage": "50.0"},
            {"name": "Food", "amount": 20, "percentage": "50.0"},
        ]


def test_empty_month_yields_zero_total_and_no_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        report = ReportGenerator(session).generate_monthly_report(
            "u1", now=datetime(2024, 6, 1)
        )
        content = json.loads(report.content)
        assert content["totalSpent"] == 0
        assert content["categories"] == []


def test_zero_amount_expenses_do_not_produce_nan_percentages() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gifts = CategoryService(session, "u1").create(CategoryIn(name="Gifts"))
        _expense(session, "u1", gifts.id, "0", date(2024, 5, 10))

        report = ReportGenerator(session).generate_monthly_report(
            "u1", now=datetime(2024, 5, 20)
        )
        content = json.loads(report.content)
        assert content["totalSpent"] == 0
        assert content["categories"] == [
            {"name": "Gifts", "amount": 0, "percentage": "0.0"}
        ]


def test_category_percentages_sum_to_one_hundred() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, "u1")
        for name in ("Rent", "Food", "Travel"):
            category = categories.create(CategoryIn(name=name))
            _expense(session, "u1", category.id, "10.01", date(2024, 5, 10))

        report = ReportGenerator(session).generate_monthly_report(
            "u1", now=datetime(2024, 5, 20)
        )
        content = json.loads(report.content)
        shares = [float(c["percentage"]) for c in content["categories"]]
        assert shares == [33.3, 33.3, 33.3]
        assert abs(sum(shares) - 100.0) <= 0.05 * len(shares)


def test_regenerating_appends_a_new_report() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, "u1").create(CategoryIn(name="Food"))
        _expense(session, "u1", food.id, "42.50", date(2024, 5, 10))

        generator = ReportGenerator(session)
        now = datetime(2024, 5, 20)
        first = generator.generate_monthly_report("u1", now=now)
        second = generator.generate_monthly_report("u1", now=now)
        session.commit()

        assert first.id != second.id
        rows = session.scalars(select(Report).where(Report.user_id == "u1")).all()
        assert len(rows) == 2
        first_content = json.loads(first.content)
        second_content = json.loads(second.content)
        assert first_content["totalSpent"] == second_content["totalSpent"] == 42.5
        assert first_content["categories"] == second_content["categories"]

        listed = ReportService(session, "u1").list_all()
        assert {r.id for r in listed} == {first.id, second.id}
        assert ReportService(session, "u2").list_all() == []
