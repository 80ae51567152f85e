import os
from functools import lru_cache
from pathlib import Path

from filters import DateRangePolicy, FilterPolicy


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    def __init__(
        self,
        database_url: str,
        log_level: str,
        sql_echo: bool,
        default_user_id: int,
        date_range_policy: DateRangePolicy,
        strict_filters: bool,
        default_page_size: int,
        max_page_size: int,
    ) -> None:
        self.database_url = database_url
        self.log_level = log_level
        self.sql_echo = sql_echo
        self.default_user_id = default_user_id
        self.date_range_policy = date_range_policy
        self.strict_filters = strict_filters
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def filter_policy(self) -> FilterPolicy:
        return FilterPolicy(
            date_range=self.date_range_policy,
            strict=self.strict_filters,
            default_page_size=self.default_page_size,
            max_page_size=self.max_page_size,
        )


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    sql_echo = _env_flag("EXPENSES_SQL_ECHO", False)
    default_user_id = int(os.getenv("EXPENSES_DEFAULT_USER_ID", "1"))
    date_range_policy = DateRangePolicy(
        os.getenv("EXPENSES_DATE_RANGE_POLICY", DateRangePolicy.require_both.value)
    )
    strict_filters = _env_flag("EXPENSES_STRICT_FILTERS", False)
    default_page_size = int(os.getenv("EXPENSES_DEFAULT_PAGE_SIZE", "10"))
    max_page_size = int(os.getenv("EXPENSES_MAX_PAGE_SIZE", "100"))
    return Settings(
        database_url=database_url,
        log_level=log_level,
        sql_echo=sql_echo,
        default_user_id=default_user_id,
        date_range_policy=date_range_policy,
        strict_filters=strict_filters,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
    )
