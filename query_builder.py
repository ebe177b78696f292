"""Translate a transaction filter into SQL predicates, ordering and paging."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Union

from sqlalchemy import ColumnElement, Select, func, or_

from models import Transaction, TransactionType
from periods import parse_date

SORT_FIELDS = {
    "date": Transaction.date,
    "amount": Transaction.amount_cents,
    "createdAt": Transaction.created_at,
    "created_at": Transaction.created_at,
}
DEFAULT_SORT_FIELD = "date"
SORT_ORDERS = ("ASC", "DESC")


class InvalidFilter(ValueError):
    pass


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start_date: Optional[Union[date, str]] = None
    end_date: Optional[Union[date, str]] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 10
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: str = "DESC"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def normalize_filters(
    filters: TransactionFilters, *, max_limit: Optional[int] = None
) -> TransactionFilters:
    """Validate paging and ordering, parse dates and coerce the sort field.

    Unknown sort fields fall back to ``date`` instead of raising; callers
    rely on that to pass user-provided column names straight through.
    """
    if filters.page is None or int(filters.page) < 1:
        raise InvalidFilter("page must be >= 1")
    if filters.limit is None or int(filters.limit) < 1:
        raise InvalidFilter("limit must be >= 1")
    limit = int(filters.limit)
    if max_limit is not None:
        limit = min(limit, max_limit)

    sort_order = (filters.sort_order or "DESC").upper()
    if sort_order not in SORT_ORDERS:
        raise InvalidFilter(f"sort_order must be ASC or DESC, got {filters.sort_order!r}")
    sort_by = filters.sort_by if filters.sort_by in SORT_FIELDS else DEFAULT_SORT_FIELD

    txn_type = filters.type
    if txn_type is not None and not isinstance(txn_type, TransactionType):
        try:
            txn_type = TransactionType(str(txn_type).lower())
        except ValueError as exc:
            raise InvalidFilter(f"Unknown transaction type {filters.type!r}") from exc

    search = filters.search.strip() if filters.search else None
    return replace(
        filters,
        type=txn_type,
        start_date=parse_date(filters.start_date, "start date"),
        end_date=parse_date(filters.end_date, "end date"),
        search=search or None,
        page=int(filters.page),
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def filter_conditions(
    user_id: int, filters: TransactionFilters
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = [Transaction.user_id == user_id]
    if filters.type:
        conditions.append(Transaction.type == filters.type)
    if filters.category_id:
        conditions.append(Transaction.category_id == filters.category_id)
    if filters.start_date and filters.end_date:
        conditions.append(
            Transaction.date.between(filters.start_date, filters.end_date)
        )
    elif filters.start_date:
        conditions.append(Transaction.date >= filters.start_date)
    elif filters.end_date:
        conditions.append(Transaction.date <= filters.end_date)
    if filters.search:
        like = f"%{_escape_like(filters.search.lower())}%"
        conditions.append(
            or_(
                func.lower(Transaction.description).like(like, escape="\\"),
                func.lower(func.coalesce(Transaction.notes, "")).like(
                    like, escape="\\"
                ),
            )
        )
    return conditions


def apply_ordering(stmt: Select, filters: TransactionFilters) -> Select:
    column = SORT_FIELDS.get(filters.sort_by, SORT_FIELDS[DEFAULT_SORT_FIELD])
    if filters.sort_order == "ASC":
        return stmt.order_by(column.asc(), Transaction.id.asc())
    return stmt.order_by(column.desc(), Transaction.id.desc())


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
