import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        warning_threshold: Decimal,
        fetch_workers: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.warning_threshold = warning_threshold
        self.fetch_workers = fetch_workers


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "Europe/Berlin")
    warning_threshold = Decimal(os.getenv("FINANCE_WARNING_THRESHOLD", "80"))
    fetch_workers = int(os.getenv("FINANCE_FETCH_WORKERS", "12"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        warning_threshold=warning_threshold,
        fetch_workers=fetch_workers,
    )
