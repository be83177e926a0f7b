"""Settings for the data cache.

Environment variables are the source of truth; a local .env file is
honored through python-dotenv.
"""
import datetime as dt
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv(override=False)

SERIES_INTERVALS = ("daily", "weekly", "monthly")

DEFAULT_DB_PATH = os.path.join(os.getcwd(), "market_data.sqlite")


def env_db_path() -> str:
    return os.getenv("MARKET_DB_PATH", DEFAULT_DB_PATH)


@dataclass(frozen=True)
class CacheConfig:
    """Throttle window for one cache type: symbols per batch and pause between batches."""

    batch_size: int
    delay: float

    def __post_init__(self):
        if not isinstance(self.batch_size, int) or self.batch_size <= 0:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0 seconds, got {self.delay!r}")


def _env_cache_config(prefix: str, batch_size: int, delay: float) -> CacheConfig:
    return CacheConfig(
        batch_size=int(os.getenv(f"{prefix}_BATCH_SIZE", str(batch_size))),
        delay=float(os.getenv(f"{prefix}_BATCH_DELAY", str(delay))),
    )


def _default_oldest_year() -> int:
    return dt.date.today().year - 20


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    alpha_vantage_api_key: str = ""
    alpha_vantage_url: str = "https://www.alphavantage.co/query"
    request_timeout: float = 30.0
    series_interval: str = "monthly"
    series_oldest_year: int = field(default_factory=_default_oldest_year)
    scheduler_timezone: str = "UTC"

    # Stay within feed vendor limits. Don't risk getting throttled, and
    # don't hold the write lock on a table for too long.
    instrument: CacheConfig = CacheConfig(batch_size=50, delay=1.0)
    trade: CacheConfig = CacheConfig(batch_size=50, delay=1.0)
    index: CacheConfig = CacheConfig(batch_size=1, delay=20.0)
    series: CacheConfig = CacheConfig(batch_size=1, delay=20.0)

    def __post_init__(self):
        if self.series_interval not in SERIES_INTERVALS:
            raise ValueError(
                f"series_interval must be one of {SERIES_INTERVALS}, got {self.series_interval!r}"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        oldest = os.getenv("SERIES_OLDEST_YEAR", "").strip()
        return cls(
            db_path=env_db_path(),
            alpha_vantage_api_key=os.getenv("ALPHA_VANTAGE_API_KEY", ""),
            alpha_vantage_url=os.getenv("ALPHA_VANTAGE_URL", "https://www.alphavantage.co/query"),
            request_timeout=float(os.getenv("FEED_REQUEST_TIMEOUT", "30")),
            series_interval=os.getenv("SERIES_INTERVAL", "monthly").strip().lower(),
            series_oldest_year=int(oldest) if oldest else _default_oldest_year(),
            scheduler_timezone=os.getenv("SCHED_TZ", "UTC"),
            instrument=_env_cache_config("INSTRUMENT", 50, 1.0),
            trade=_env_cache_config("TRADE", 50, 1.0),
            index=_env_cache_config("INDEX", 1, 20.0),
            series=_env_cache_config("SERIES", 1, 20.0),
        )
