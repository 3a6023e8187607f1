import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        receipts_dir: Path,
        receipts_base_url: str,
        receipt_max_bytes: int,
        queue_batch_size: int,
        queue_poll_secs: float,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.receipts_dir = receipts_dir
        self.receipts_base_url = receipts_base_url
        self.receipt_max_bytes = receipt_max_bytes
        self.queue_batch_size = queue_batch_size
        self.queue_poll_secs = queue_poll_secs
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    receipts_dir = Path(
        os.getenv("FINANCE_RECEIPTS_DIR", str(data_dir / "receipts"))
    ).resolve()
    receipts_base_url = os.getenv("FINANCE_RECEIPTS_BASE_URL", "/receipts").rstrip("/")
    receipt_max_bytes = int(os.getenv("FINANCE_RECEIPT_MAX_BYTES", str(5 * 1024 * 1024)))
    queue_batch_size = int(os.getenv("FINANCE_QUEUE_BATCH_SIZE", "10"))
    queue_poll_secs = float(os.getenv("FINANCE_QUEUE_POLL_SECS", "30"))
    scheduler_enabled = _env_flag("FINANCE_SCHEDULER_ENABLED", True)
    return Settings(
        database_url=database_url,
        timezone=timezone,
        receipts_dir=receipts_dir,
        receipts_base_url=receipts_base_url,
        receipt_max_bytes=receipt_max_bytes,
        queue_batch_size=queue_batch_size,
        queue_poll_secs=queue_poll_secs,
        scheduler_enabled=scheduler_enabled,
    )
