import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field(default="#6366f1", max_length=7)
    icon: Optional[str] = Field(default=None, max_length=16)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    color: str
    icon: Optional[str]
    is_active: bool
    is_default: bool


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    date: dt.date
    type: TransactionType
    category_id: Optional[int] = None
    tags: Optional[str] = None
    notes: Optional[str] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    description: str
    date: date
    type: TransactionType
    category_id: Optional[int]
    tags: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class TransactionFilterIn(BaseModel):
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    sort_by: str = "date"
    sort_order: Literal["ASC", "DESC", "asc", "desc"] = "DESC"


class TransactionPage(BaseModel):
    items: list[TransactionOut]
    total: int
    page: int
    limit: int
    total_pages: int


class Summary(BaseModel):
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    transaction_count: int


class CategoryReport(BaseModel):
    category_id: int
    category_name: Optional[str]
    category_color: Optional[str]
    income: Decimal
    expense: Decimal
    transaction_count: int
    percentage: float


class MonthlyReport(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int
    income: Decimal
    expense: Decimal
    balance: Decimal
    transaction_count: int


class YearlyReport(BaseModel):
    year: int
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    transaction_count: int
    monthly_data: list[MonthlyReport]
    top_categories: list[CategoryReport]


class DailyTrend(BaseModel):
    date: date
    income: Decimal
    expense: Decimal
    balance: Decimal


class DateRangeReport(BaseModel):
    start_date: date
    end_date: date
    summary: Summary
    category_breakdown: list[CategoryReport]
    daily_trends: list[DailyTrend]


class MonthTypeStat(BaseModel):
    month: int
    type: TransactionType
    total: Decimal
    count: int


class CategoryTypeStat(BaseModel):
    category_id: Optional[int]
    category_name: Optional[str]
    category_color: Optional[str]
    type: TransactionType
    total: Decimal
    count: int
