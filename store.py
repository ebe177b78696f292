from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Protocol, Sequence

from sqlalchemy import extract, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, joinedload

from aggregation import CategoryTypeRow, DayTypeRow, MonthTypeRow
from models import Category, Transaction
from periods import year_period
from query_builder import TransactionFilters, apply_ordering, filter_conditions

logger = logging.getLogger(__name__)


class StoreUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class CategoryRef:
    id: int
    name: str
    color: str


class CategoryLookup(Protocol):
    def resolve(self, category_id: int) -> CategoryRef: ...


class TransactionStore(Protocol):
    def query(
        self, user_id: int, filters: TransactionFilters, offset: int, limit: int
    ) -> tuple[list[Transaction], int]: ...

    def scan_range(
        self, user_id: int, start: Optional[date], end: Optional[date]
    ) -> Sequence[Transaction]: ...

    def raw_group_by_month_type(self, user_id: int, year: int) -> list[MonthTypeRow]: ...

    def raw_group_by_category_type(
        self, user_id: int, start: Optional[date], end: Optional[date]
    ) -> list[CategoryTypeRow]: ...

    def raw_group_by_day_type(
        self, user_id: int, start: date, end: date
    ) -> list[DayTypeRow]: ...


def _date_bounds(start: Optional[date], end: Optional[date]) -> list:
    conditions = []
    if start and end:
        conditions.append(Transaction.date.between(start, end))
    elif start:
        conditions.append(Transaction.date >= start)
    elif end:
        conditions.append(Transaction.date <= end)
    return conditions


class SQLTransactionStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.warning(f"store_unavailable: operation={operation} error={exc}")
            raise StoreUnavailable(f"Transaction store unavailable during {operation}") from exc

    def query(
        self, user_id: int, filters: TransactionFilters, offset: int, limit: int
    ) -> tuple[list[Transaction], int]:
        conditions = filter_conditions(user_id, filters)
        count_stmt = select(func.count(Transaction.id)).where(*conditions)
        stmt = apply_ordering(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(*conditions),
            filters,
        )
        stmt = stmt.offset(offset).limit(limit)
        with self._guard("query"):
            total = int(self.session.execute(count_stmt).scalar_one() or 0)
            items = list(self.session.scalars(stmt).unique().all())
        return items, total

    def scan_range(
        self, user_id: int, start: Optional[date], end: Optional[date]
    ) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id, *_date_bounds(start, end))
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        with self._guard("scan_range"):
            return self.session.scalars(stmt).all()

    def raw_group_by_month_type(self, user_id: int, year: int) -> list[MonthTypeRow]:
        period = year_period(year)
        month = extract("month", Transaction.date).label("month")
        stmt = (
            select(
                month,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(month, Transaction.type)
            .order_by(month)
        )
        with self._guard("group_by_month"):
            rows = self.session.execute(stmt).all()
        return [
            MonthTypeRow(
                month=int(row.month),
                type=row.type,
                total_cents=int(row.total or 0),
                count=int(row.count or 0),
            )
            for row in rows
        ]

    def raw_group_by_category_type(
        self, user_id: int, start: Optional[date], end: Optional[date]
    ) -> list[CategoryTypeRow]:
        stmt = (
            select(
                Transaction.category_id,
                Category.name.label("category_name"),
                Category.color.label("category_color"),
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .outerjoin(Category, Category.id == Transaction.category_id)
            .where(Transaction.user_id == user_id, *_date_bounds(start, end))
            .group_by(
                Transaction.category_id,
                Category.name,
                Category.color,
                Transaction.type,
            )
            .order_by(Transaction.category_id, Transaction.type)
        )
        with self._guard("group_by_category"):
            rows = self.session.execute(stmt).all()
        return [
            CategoryTypeRow(
                category_id=row.category_id,
                category_name=row.category_name,
                category_color=row.category_color,
                type=row.type,
                total_cents=int(row.total or 0),
                count=int(row.count or 0),
            )
            for row in rows
        ]

    def raw_group_by_day_type(
        self, user_id: int, start: date, end: date
    ) -> list[DayTypeRow]:
        stmt = (
            select(
                Transaction.date,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.date.between(start, end),
            )
            .group_by(Transaction.date, Transaction.type)
            .order_by(Transaction.date)
        )
        with self._guard("group_by_day"):
            rows = self.session.execute(stmt).all()
        return [
            DayTypeRow(
                day=row.date,
                type=row.type,
                total_cents=int(row.total or 0),
                count=int(row.count or 0),
            )
            for row in rows
        ]
