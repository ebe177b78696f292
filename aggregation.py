"""Pure aggregation over transactions and grouped store rows.

All arithmetic is done on integer cents; values are converted to
``Decimal`` only when the output models are built.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Protocol

from models import TransactionType, cents_to_decimal
from periods import iter_days
from schemas import CategoryReport, DailyTrend, MonthlyReport, Summary


class Ledgered(Protocol):
    type: TransactionType
    amount_cents: int


@dataclass(frozen=True)
class CategoryTypeRow:
    category_id: Optional[int]
    category_name: Optional[str]
    category_color: Optional[str]
    type: TransactionType
    total_cents: int
    count: int


@dataclass(frozen=True)
class MonthTypeRow:
    month: int
    type: TransactionType
    total_cents: int
    count: int


@dataclass(frozen=True)
class DayTypeRow:
    day: date
    type: TransactionType
    total_cents: int
    count: int


def _percentage(part_cents: int, total_cents: int) -> float:
    return (part_cents / total_cents * 100) if total_cents else 0.0


def summarize(transactions: Iterable[Ledgered]) -> Summary:
    income = 0
    expense = 0
    count = 0
    for txn in transactions:
        if txn.type == TransactionType.income:
            income += txn.amount_cents
        else:
            expense += txn.amount_cents
        count += 1
    return Summary(
        total_income=cents_to_decimal(income),
        total_expense=cents_to_decimal(expense),
        balance=cents_to_decimal(income - expense),
        transaction_count=count,
    )


@dataclass
class _CategoryBucket:
    category_id: int
    name: Optional[str]
    color: Optional[str]
    income_cents: int = 0
    expense_cents: int = 0
    count: int = 0


def _bucket_report(bucket: _CategoryBucket, total_expense: int) -> CategoryReport:
    return CategoryReport(
        category_id=bucket.category_id,
        category_name=bucket.name,
        category_color=bucket.color,
        income=cents_to_decimal(bucket.income_cents),
        expense=cents_to_decimal(bucket.expense_cents),
        transaction_count=bucket.count,
        percentage=_percentage(bucket.expense_cents, total_expense),
    )


def by_category(rows: Iterable[CategoryTypeRow]) -> list[CategoryReport]:
    """Merge per-type rows into one entry per category.

    The percentage denominator is the expense of every row passed in,
    including rows whose category reference has been cleared; those rows
    produce no entry of their own.
    """
    buckets: dict[int, _CategoryBucket] = {}
    total_expense = 0
    for row in rows:
        if row.type == TransactionType.expense:
            total_expense += row.total_cents
        if row.category_id is None:
            continue
        bucket = buckets.get(row.category_id)
        if bucket is None:
            bucket = _CategoryBucket(row.category_id, row.category_name, row.category_color)
            buckets[row.category_id] = bucket
        if row.type == TransactionType.income:
            bucket.income_cents += row.total_cents
        else:
            bucket.expense_cents += row.total_cents
        bucket.count += row.count

    return [_bucket_report(bucket, total_expense) for bucket in buckets.values()]


def largest_spenders(reports: Iterable[CategoryReport], limit: int) -> list[CategoryReport]:
    """Order by expense (ties on category id) and keep the first ``limit``."""
    return sorted(reports, key=lambda r: (-r.expense, r.category_id))[:limit]


def rank_categories(reports: Iterable[CategoryReport], limit: int) -> list[CategoryReport]:
    """Keep the ``limit`` biggest spenders, re-basing percentages on them."""
    ranked = largest_spenders(reports, limit)
    total_expense = sum(r.expense for r in ranked)
    return [
        r.model_copy(
            update={
                "percentage": float(r.expense / total_expense * 100)
                if total_expense
                else 0.0
            }
        )
        for r in ranked
    ]


def by_month(rows: Iterable[MonthTypeRow], year: int) -> list[MonthlyReport]:
    totals: dict[tuple[int, TransactionType], int] = {}
    counts: dict[int, int] = {}
    for row in rows:
        key = (int(row.month), row.type)
        totals[key] = totals.get(key, 0) + row.total_cents
        counts[int(row.month)] = counts.get(int(row.month), 0) + row.count

    out: list[MonthlyReport] = []
    for month in range(1, 13):
        income = totals.get((month, TransactionType.income), 0)
        expense = totals.get((month, TransactionType.expense), 0)
        out.append(
            MonthlyReport(
                month=month,
                year=year,
                income=cents_to_decimal(income),
                expense=cents_to_decimal(expense),
                balance=cents_to_decimal(income - expense),
                transaction_count=counts.get(month, 0),
            )
        )
    return out


def daily_trends(
    rows: Iterable[DayTypeRow], start: date, end: date
) -> list[DailyTrend]:
    totals: dict[tuple[date, TransactionType], int] = {}
    for row in rows:
        key = (row.day, row.type)
        totals[key] = totals.get(key, 0) + row.total_cents

    trends: list[DailyTrend] = []
    for day in iter_days(start, end):
        income = totals.get((day, TransactionType.income), 0)
        expense = totals.get((day, TransactionType.expense), 0)
        trends.append(
            DailyTrend(
                date=day,
                income=cents_to_decimal(income),
                expense=cents_to_decimal(expense),
                balance=cents_to_decimal(income - expense),
            )
        )
    return trends
