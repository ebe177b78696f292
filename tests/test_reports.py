from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Category, TransactionType
from periods import InvalidDateRange
from query_builder import InvalidFilter
from schemas import TransactionIn
from services import ReportService, TransactionService
from store import SQLTransactionStore, StoreUnavailable


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_categories(session, *names, user_id=1):
    categories = [Category(user_id=user_id, name=name, color="#123456") for name in names]
    session.add_all(categories)
    session.commit()
    for category in categories:
        session.refresh(category)
    return categories


def record(service, day, type_, amount, description, category=None):
    return service.create(
        TransactionIn(
            amount=Decimal(amount),
            description=description,
            date=day,
            type=type_,
            category_id=category.id if category else None,
        )
    )


def seed_may(session):
    food, salary = make_categories(session, "Food", "Salary")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 5, 15), TransactionType.expense, "100", "Groceries", food)
    record(txns, date(2024, 5, 20), TransactionType.income, "2000", "Salary", salary)
    return food, salary


def test_monthly_report_scenario() -> None:
    session = make_session()
    seed_may(session)

    report = ReportService(session, user_id=1).monthly(5, 2024)

    assert report.month == 5
    assert report.year == 2024
    assert report.income == Decimal("2000")
    assert report.expense == Decimal("100")
    assert report.balance == Decimal("1900")
    assert report.transaction_count == 2


def test_monthly_report_window_is_inclusive_of_last_day() -> None:
    session = make_session()
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 2, 29), TransactionType.expense, "1.10", "Leap day")
    record(txns, date(2024, 3, 1), TransactionType.expense, "5.00", "Next month")

    report = ReportService(session, user_id=1).monthly(2, 2024)
    assert report.expense == Decimal("1.10")
    assert report.transaction_count == 1


def test_yearly_report_scenario() -> None:
    session = make_session()
    food, salary = seed_may(session)

    report = ReportService(session, user_id=1).yearly(2024)

    assert report.total_income == Decimal("2000")
    assert report.total_expense == Decimal("100")
    assert report.balance == Decimal("1900")
    assert len(report.monthly_data) == 12
    may = report.monthly_data[4]
    assert may.month == 5
    assert may.income == Decimal("2000")
    assert may.expense == Decimal("100")
    assert may.transaction_count == 2
    for index, month in enumerate(report.monthly_data):
        if index == 4:
            continue
        assert month.income == 0 and month.expense == 0 and month.balance == 0
    assert [c.category_id for c in report.top_categories] == [food.id, salary.id]


def test_yearly_top_categories_capped_at_ten() -> None:
    session = make_session()
    categories = make_categories(session, *[f"Cat {n}" for n in range(12)])
    txns = TransactionService(session, user_id=1)
    for n, category in enumerate(categories):
        record(txns, date(2024, 1, 1 + n), TransactionType.expense, str(10 + n), "x", category)

    report = ReportService(session, user_id=1).yearly(2024)
    assert len(report.top_categories) == 10
    assert report.top_categories[0].category_id == categories[-1].id
    expenses = [c.expense for c in report.top_categories]
    assert expenses == sorted(expenses, reverse=True)


def test_top_categories_scenario() -> None:
    session = make_session()
    food, other = make_categories(session, "Food", "Other")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 5, 1), TransactionType.expense, "100", "Dinner", food)
    record(txns, date(2024, 5, 2), TransactionType.expense, "50", "Misc", other)

    top = ReportService(session, user_id=1).top_categories(limit=1)

    assert len(top) == 1
    assert top[0].category_id == food.id
    assert top[0].category_name == "Food"
    assert top[0].expense == Decimal("100")
    assert top[0].percentage == 100


def test_top_categories_ties_break_on_category_id() -> None:
    session = make_session()
    first, second, third = make_categories(session, "A", "B", "C")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 5, 1), TransactionType.expense, "30", "c", third)
    record(txns, date(2024, 5, 1), TransactionType.expense, "30", "b", second)
    record(txns, date(2024, 5, 1), TransactionType.expense, "30", "a", first)

    top = ReportService(session, user_id=1).top_categories()
    assert [c.category_id for c in top] == [first.id, second.id, third.id]


def test_top_categories_respects_optional_window() -> None:
    session = make_session()
    food, fun = make_categories(session, "Food", "Fun")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 4, 30), TransactionType.expense, "500", "April", fun)
    record(txns, date(2024, 5, 3), TransactionType.expense, "20", "May", food)

    top = ReportService(session, user_id=1).top_categories(5, "2024-05-01", "2024-05-31")
    assert [c.category_id for c in top] == [food.id]

    with pytest.raises(InvalidFilter):
        ReportService(session, user_id=1).top_categories(0)


def test_date_range_report_scenario() -> None:
    session = make_session()
    (food,) = make_categories(session, "Food")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 5, 2), TransactionType.expense, "12.34", "Lunch", food)
    record(txns, date(2024, 5, 2), TransactionType.income, "50", "Refund")

    report = ReportService(session, user_id=1).date_range("2024-05-01", "2024-05-03")

    assert report.start_date == date(2024, 5, 1)
    assert report.end_date == date(2024, 5, 3)
    trends = report.daily_trends
    assert [t.date for t in trends] == [
        date(2024, 5, 1),
        date(2024, 5, 2),
        date(2024, 5, 3),
    ]
    for quiet in (trends[0], trends[2]):
        assert quiet.income == 0 and quiet.expense == 0 and quiet.balance == 0
    assert trends[1].income == Decimal("50")
    assert trends[1].expense == Decimal("12.34")
    assert trends[1].balance == Decimal("37.66")
    assert [c.category_id for c in report.category_breakdown] == [food.id]
    assert report.category_breakdown[0].percentage == 100


def test_daily_trends_roll_up_to_summary() -> None:
    session = make_session()
    food, salary = make_categories(session, "Food", "Salary")
    txns = TransactionService(session, user_id=1)
    amounts = ["0.10", "0.20", "19.99", "7.01", "100.00"]
    for n, amount in enumerate(amounts):
        record(txns, date(2024, 1, 1 + n * 3), TransactionType.expense, amount, "spend", food)
    record(txns, date(2024, 1, 31), TransactionType.income, "1234.56", "pay", salary)
    record(txns, date(2024, 2, 1), TransactionType.income, "999", "outside")

    report = ReportService(session, user_id=1).date_range(date(2024, 1, 1), date(2024, 1, 31))

    assert len(report.daily_trends) == 31
    income = sum(t.income for t in report.daily_trends)
    expense = sum(t.expense for t in report.daily_trends)
    assert income + expense == report.summary.total_income + report.summary.total_expense
    assert report.summary.total_expense == Decimal("127.30")
    assert report.summary.transaction_count == 6
    assert sum(c.percentage for c in report.category_breakdown) <= 100 + 1e-9


def test_uncategorized_expenses_keep_percentages_below_hundred() -> None:
    session = make_session()
    (food,) = make_categories(session, "Food")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 6, 1), TransactionType.expense, "75", "Food", food)
    record(txns, date(2024, 6, 1), TransactionType.expense, "25", "Unfiled")

    report = ReportService(session, user_id=1).date_range("2024-06-01", "2024-06-30")
    assert [c.percentage for c in report.category_breakdown] == [75.0]


def test_owner_without_transactions_gets_zeroed_reports() -> None:
    session = make_session()
    seed_may(session)
    reports = ReportService(session, user_id=42)

    monthly = reports.monthly(5, 2024)
    assert (monthly.income, monthly.expense, monthly.balance, monthly.transaction_count) == (0, 0, 0, 0)

    yearly = reports.yearly(2024)
    assert len(yearly.monthly_data) == 12
    assert yearly.top_categories == []
    assert yearly.total_income == 0

    ranged = reports.date_range("2024-05-01", "2024-05-07")
    assert len(ranged.daily_trends) == 7
    assert ranged.category_breakdown == []
    assert ranged.summary.balance == 0

    assert reports.top_categories() == []


@pytest.mark.parametrize(
    "start,end",
    [
        ("not-a-date", "2024-01-31"),
        ("2024-01-01", "2024-02-30"),
        ("2024-02-01", "2024-01-01"),
        (None, "2024-01-01"),
    ],
)
def test_date_range_rejects_bad_windows(start, end) -> None:
    session = make_session()
    with pytest.raises(InvalidDateRange):
        ReportService(session, user_id=1).date_range(start, end)


def test_date_range_rejects_windows_longer_than_limit() -> None:
    session = make_session()
    with pytest.raises(InvalidDateRange):
        ReportService(session, user_id=1).date_range("1900-01-01", "2024-01-01")


def test_monthly_rejects_month_out_of_range() -> None:
    session = make_session()
    with pytest.raises(InvalidDateRange):
        ReportService(session, user_id=1).monthly(13, 2024)


class BrokenSession:
    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    def scalars(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def test_store_failures_surface_as_store_unavailable() -> None:
    broken = BrokenSession()
    reports = ReportService(broken, user_id=1, store=SQLTransactionStore(broken))

    with pytest.raises(StoreUnavailable):
        reports.monthly(5, 2024)
    with pytest.raises(StoreUnavailable):
        reports.date_range("2024-01-01", "2024-01-02")


def test_transaction_statistics_endpoints() -> None:
    session = make_session()
    food, salary = seed_may(session)
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 7, 1), TransactionType.expense, "5", "Unfiled")

    overall = txns.summary()
    assert overall.total_expense == Decimal("105")
    assert overall.transaction_count == 3
    assert txns.summary(end="2024-05-31").transaction_count == 2

    monthly = {(s.month, s.type): s for s in txns.monthly_stats(2024)}
    assert monthly[(5, TransactionType.income)].total == Decimal("2000")
    assert monthly[(7, TransactionType.expense)].count == 1

    stats = txns.category_stats("2024-05-01", "2024-07-31")
    by_id = {(s.category_id, s.type): s for s in stats}
    assert by_id[(food.id, TransactionType.expense)].category_name == "Food"
    assert by_id[(None, TransactionType.expense)].total == Decimal("5")


def test_yearly_top_categories_keep_share_of_all_expense() -> None:
    session = make_session()
    categories = make_categories(session, *[f"Even {n}" for n in range(12)])
    txns = TransactionService(session, user_id=1)
    for n, category in enumerate(categories):
        record(txns, date(2024, 3, 1 + n), TransactionType.expense, "10.00", "x", category)

    report = ReportService(session, user_id=1).yearly(2024)

    assert len(report.top_categories) == 10
    assert [c.category_id for c in report.top_categories] == [c.id for c in categories[:10]]
    for entry in report.top_categories:
        assert entry.percentage == pytest.approx(100 / 12)


def test_yearly_and_date_range_percentages_agree() -> None:
    session = make_session()
    (food,) = make_categories(session, "Food")
    txns = TransactionService(session, user_id=1)
    record(txns, date(2024, 6, 1), TransactionType.expense, "75", "Food", food)
    record(txns, date(2024, 6, 1), TransactionType.expense, "25", "Unfiled")
    reports = ReportService(session, user_id=1)

    yearly = reports.yearly(2024)
    ranged = reports.date_range("2024-01-01", "2024-12-31")

    assert [c.percentage for c in yearly.top_categories] == [75.0]
    assert [c.percentage for c in ranged.category_breakdown] == [75.0]


@pytest.mark.parametrize("year", [0, -1, 10000])
def test_years_outside_calendar_raise_invalid_date_range(year) -> None:
    session = make_session()
    with pytest.raises(InvalidDateRange):
        ReportService(session, user_id=1).yearly(year)
    with pytest.raises(InvalidDateRange):
        ReportService(session, user_id=1).monthly(1, year)
    with pytest.raises(InvalidDateRange):
        TransactionService(session, user_id=1).monthly_stats(year)
