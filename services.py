from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from aggregation import (
    by_category,
    by_month,
    daily_trends,
    largest_spenders,
    rank_categories,
    summarize,
)
from config import get_settings
from models import Category, Transaction, cents_to_decimal, decimal_to_cents
from periods import month_period, resolve_optional_range, resolve_range, year_period
from query_builder import InvalidFilter, TransactionFilters, normalize_filters, total_pages
from schemas import (
    CategoryIn,
    CategoryReport,
    CategoryTypeStat,
    DateRangeReport,
    MonthlyReport,
    MonthTypeStat,
    Summary,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    YearlyReport,
)
from store import CategoryRef, SQLTransactionStore, TransactionStore

logger = logging.getLogger(__name__)

DateArg = Union[date, str, None]

DEFAULT_CATEGORIES = [
    {
        "name": "Продукты питания",
        "description": "Расходы на еду и напитки",
        "color": "#ff6b6b",
        "icon": "🍕",
    },
    {
        "name": "Транспорт",
        "description": "Расходы на транспорт",
        "color": "#4ecdc4",
        "icon": "🚗",
    },
    {
        "name": "Развлечения",
        "description": "Расходы на развлечения",
        "color": "#45b7d1",
        "icon": "🎬",
    },
    {
        "name": "Здоровье",
        "description": "Медицинские расходы",
        "color": "#96ceb4",
        "icon": "🏥",
    },
    {
        "name": "Зарплата",
        "description": "Доходы от работы",
        "color": "#feca57",
        "icon": "💰",
    },
    {
        "name": "Другое",
        "description": "Прочие расходы и доходы",
        "color": "#a55eea",
        "icon": "📦",
    },
]


class NotFound(ValueError):
    pass


class CategoryProtected(ValueError):
    pass


def get_current_user_id() -> int:
    return get_settings().default_user_id


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def list_active(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id, Category.is_active.is_(True))
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def resolve(self, category_id: int) -> CategoryRef:
        category = self.get(category_id)
        return CategoryRef(id=category.id, name=category.name, color=category.color)

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_unique_name(name)
        category = Category(
            user_id=self.user_id,
            name=name,
            description=data.description,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise CategoryProtected("Default categories cannot be modified")
        name = data.name.strip()
        self._ensure_unique_name(name, exclude_id=category.id)
        category.name = name
        category.description = data.description
        category.color = data.color
        category.icon = data.icon
        self.session.commit()
        return category

    def remove(self, category_id: int) -> None:
        """Delete a category, or deactivate it while transactions still use it."""
        category = self.get(category_id)
        if category.is_default:
            raise CategoryProtected("Default categories cannot be removed")
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category.id
                )
            ).scalar_one()
            or 0
        )
        if in_use:
            category.is_active = False
            logger.info(
                f"category_deactivated: user_id={self.user_id} category_id={category.id} transactions={in_use}"
            )
        else:
            self.session.delete(category)
        self.session.commit()

    def create_defaults(self) -> list[Category]:
        existing = {c.name.lower() for c in self.list_all()}
        created: list[Category] = []
        for item in DEFAULT_CATEGORIES:
            if item["name"].lower() in existing:
                continue
            category = Category(user_id=self.user_id, is_default=True, **item)
            self.session.add(category)
            created.append(category)
        self.session.commit()
        for category in created:
            self.session.refresh(category)
        return created


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        store: Optional[TransactionStore] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = store or SQLTransactionStore(session)
        self.categories = CategoryService(session, self.user_id)

    def list(self, filters: Optional[TransactionFilters] = None) -> TransactionPage:
        settings = get_settings()
        query = normalize_filters(
            filters or TransactionFilters(), max_limit=settings.max_page_limit
        )
        items, total = self.store.query(self.user_id, query, query.offset, query.limit)
        return TransactionPage(
            items=[TransactionOut.model_validate(txn) for txn in items],
            total=total,
            page=query.page,
            limit=query.limit,
            total_pages=total_pages(total, query.limit),
        )

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        if data.category_id is not None:
            self.categories.resolve(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=decimal_to_cents(data.amount),
            description=data.description.strip(),
            date=data.date,
            type=data.type,
            category_id=data.category_id,
            tags=data.tags,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        if data.category_id is not None and data.category_id != txn.category_id:
            self.categories.resolve(data.category_id)
            txn.category_id = data.category_id
        txn.amount_cents = decimal_to_cents(data.amount)
        txn.description = data.description.strip()
        txn.date = data.date
        txn.type = data.type
        txn.tags = data.tags
        txn.notes = data.notes
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def summary(self, start: DateArg = None, end: DateArg = None) -> Summary:
        start_date, end_date = resolve_optional_range(start, end)
        return summarize(self.store.scan_range(self.user_id, start_date, end_date))

    def monthly_stats(self, year: int) -> list[MonthTypeStat]:
        return [
            MonthTypeStat(
                month=row.month,
                type=row.type,
                total=cents_to_decimal(row.total_cents),
                count=row.count,
            )
            for row in self.store.raw_group_by_month_type(self.user_id, year)
        ]

    def category_stats(
        self, start: DateArg = None, end: DateArg = None
    ) -> list[CategoryTypeStat]:
        start_date, end_date = resolve_optional_range(start, end)
        rows = self.store.raw_group_by_category_type(self.user_id, start_date, end_date)
        return [
            CategoryTypeStat(
                category_id=row.category_id,
                category_name=row.category_name,
                category_color=row.category_color,
                type=row.type,
                total=cents_to_decimal(row.total_cents),
                count=row.count,
            )
            for row in rows
        ]


class ReportService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        store: Optional[TransactionStore] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = store or SQLTransactionStore(session)
        self.settings = get_settings()

    def monthly(self, month: int, year: int) -> MonthlyReport:
        period = month_period(month, year)
        summary = summarize(self.store.scan_range(self.user_id, period.start, period.end))
        return MonthlyReport(
            month=month,
            year=year,
            income=summary.total_income,
            expense=summary.total_expense,
            balance=summary.balance,
            transaction_count=summary.transaction_count,
        )

    def yearly(self, year: int) -> YearlyReport:
        period = year_period(year)
        summary = summarize(self.store.scan_range(self.user_id, period.start, period.end))
        monthly_data = by_month(
            self.store.raw_group_by_month_type(self.user_id, year), year
        )
        categories = by_category(
            self.store.raw_group_by_category_type(self.user_id, period.start, period.end)
        )
        return YearlyReport(
            year=year,
            total_income=summary.total_income,
            total_expense=summary.total_expense,
            balance=summary.balance,
            transaction_count=summary.transaction_count,
            monthly_data=monthly_data,
            top_categories=largest_spenders(
                categories, self.settings.yearly_top_categories
            ),
        )

    def date_range(self, start: DateArg, end: DateArg) -> DateRangeReport:
        period = resolve_range(start, end, max_days=self.settings.max_report_days)
        summary = summarize(self.store.scan_range(self.user_id, period.start, period.end))
        breakdown = by_category(
            self.store.raw_group_by_category_type(self.user_id, period.start, period.end)
        )
        trends = daily_trends(
            self.store.raw_group_by_day_type(self.user_id, period.start, period.end),
            period.start,
            period.end,
        )
        return DateRangeReport(
            start_date=period.start,
            end_date=period.end,
            summary=summary,
            category_breakdown=breakdown,
            daily_trends=trends,
        )

    def top_categories(
        self,
        limit: Optional[int] = None,
        start: DateArg = None,
        end: DateArg = None,
    ) -> list[CategoryReport]:
        if limit is None:
            limit = self.settings.top_categories_limit
        if limit < 1:
            raise InvalidFilter("limit must be >= 1")
        start_date, end_date = resolve_optional_range(start, end)
        categories = by_category(
            self.store.raw_group_by_category_type(self.user_id, start_date, end_date)
        )
        return rank_categories(categories, limit)
