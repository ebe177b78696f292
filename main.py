import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from periods import InvalidDateRange
from query_builder import InvalidFilter, TransactionFilters
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryReport,
    CategoryTypeStat,
    DateRangeReport,
    MonthlyReport,
    MonthTypeStat,
    Summary,
    TransactionFilterIn,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    YearlyReport,
)
from services import (
    CategoryProtected,
    CategoryService,
    NotFound,
    ReportService,
    TransactionService,
)
from store import StoreUnavailable

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Finance Ledger", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    return x_user_id or get_settings().default_user_id


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, NotFound):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, CategoryProtected):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, StoreUnavailable):
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise exc


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/transactions", response_model=TransactionPage)
def api_list_transactions(
    params: TransactionFilterIn = Depends(),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(**params.model_dump())
    try:
        return TransactionService(db, user_id).list(filters)
    except (InvalidFilter, InvalidDateRange, StoreUnavailable) as exc:
        _raise_http(exc)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def api_create_transaction(
    payload: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).create(payload)
    except ValueError as exc:
        _raise_http(exc)
    logger.info(f"transaction_created: user_id={user_id} id={txn.id} type={txn.type.value}")
    return txn


@app.get("/api/transactions/summary", response_model=Summary)
def api_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).summary(start_date, end_date)
    except (ValueError, StoreUnavailable) as exc:
        _raise_http(exc)


@app.get("/api/transactions/stats/monthly", response_model=list[MonthTypeStat])
def api_monthly_stats(
    year: int = Query(..., ge=1, le=9999),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).monthly_stats(year)
    except (InvalidDateRange, StoreUnavailable) as exc:
        _raise_http(exc)


@app.get("/api/transactions/stats/categories", response_model=list[CategoryTypeStat])
def api_category_stats(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).category_stats(start_date, end_date)
    except (ValueError, StoreUnavailable) as exc:
        _raise_http(exc)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except NotFound as exc:
        _raise_http(exc)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.delete("/api/transactions/{transaction_id}")
def api_delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except NotFound as exc:
        _raise_http(exc)
    logger.info(f"transaction_deleted: user_id={user_id} id={transaction_id}")
    return {"deleted": transaction_id}


@app.get("/api/categories", response_model=list[CategoryOut])
def api_list_categories(
    active: bool = False,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = CategoryService(db, user_id)
    return service.list_active() if active else service.list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def api_create_category(
    payload: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).create(payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/api/categories/defaults", response_model=list[CategoryOut])
def api_create_default_categories(
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).create_defaults()


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def api_get_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except NotFound as exc:
        _raise_http(exc)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def api_update_category(
    category_id: int,
    payload: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).update(category_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.delete("/api/categories/{category_id}")
def api_delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).remove(category_id)
    except ValueError as exc:
        _raise_http(exc)
    return {"deleted": category_id}


@app.get("/api/reports/monthly", response_model=MonthlyReport)
def api_monthly_report(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=1, le=9999),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ReportService(db, user_id).monthly(month, year)
    except (InvalidDateRange, StoreUnavailable) as exc:
        _raise_http(exc)


@app.get("/api/reports/yearly", response_model=YearlyReport)
def api_yearly_report(
    year: int = Query(..., ge=1, le=9999),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ReportService(db, user_id).yearly(year)
    except (InvalidDateRange, StoreUnavailable) as exc:
        _raise_http(exc)


@app.get("/api/reports/date-range", response_model=DateRangeReport)
def api_date_range_report(
    start_date: str,
    end_date: str,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        report = ReportService(db, user_id).date_range(start_date, end_date)
    except (InvalidDateRange, StoreUnavailable) as exc:
        _raise_http(exc)
    logger.info(
        f"date_range_report: user_id={user_id} start={report.start_date} end={report.end_date} days={len(report.daily_trends)}"
    )
    return report


@app.get("/api/reports/top-categories", response_model=list[CategoryReport])
def api_top_categories(
    limit: Optional[int] = Query(default=None, ge=1),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ReportService(db, user_id).top_categories(limit, start_date, end_date)
    except (ValueError, StoreUnavailable) as exc:
        _raise_http(exc)
