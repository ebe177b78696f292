import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        default_user_id: int,
        max_page_limit: int,
        max_report_days: int,
        top_categories_limit: int,
        yearly_top_categories: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.default_user_id = default_user_id
        self.max_page_limit = max_page_limit
        self.max_report_days = max_report_days
        self.top_categories_limit = top_categories_limit
        self.yearly_top_categories = yearly_top_categories
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "ledger.db"
        database_url = f"sqlite:///{default_db}"
    default_user_id = int(os.getenv("LEDGER_DEFAULT_USER_ID", "1"))
    max_page_limit = int(os.getenv("LEDGER_MAX_PAGE_LIMIT", "100"))
    max_report_days = int(os.getenv("LEDGER_MAX_REPORT_DAYS", "3660"))
    top_categories_limit = int(os.getenv("LEDGER_TOP_CATEGORIES_LIMIT", "5"))
    yearly_top_categories = int(os.getenv("LEDGER_YEARLY_TOP_CATEGORIES", "10"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        default_user_id=default_user_id,
        max_page_limit=max_page_limit,
        max_report_days=max_report_days,
        top_categories_limit=top_categories_limit,
        yearly_top_categories=yearly_top_categories,
        log_level=log_level,
    )
