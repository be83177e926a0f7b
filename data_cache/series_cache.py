"""Historical series (daily/weekly/monthly bars) per instrument."""
import time
from typing import Callable, Iterable, List, Optional

from .base import FeedCache, as_symbols
from .config import CacheConfig, SERIES_INTERVALS
from .feed import FeedGateway
from .models import SeriesEntry
from .reconciliation import reconcile_series


class SeriesCache(FeedCache):
    """
    Series reconciliation reuses a stored row from the same calendar month
    when there is no row for the exact date, so a month is represented by
    its most recently processed observation.
    """

    model = SeriesEntry
    month_fallback = True
    label = "SERIES BULK LOAD"

    def __init__(
        self,
        gateway: FeedGateway,
        config: CacheConfig,
        db_path: Optional[str] = None,
        time_interval: str = "monthly",
        oldest_year: int = 2000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if time_interval not in SERIES_INTERVALS:
            raise ValueError(f"time_interval must be one of {SERIES_INTERVALS}, got {time_interval!r}")
        super().__init__(gateway, config, db_path=db_path, sleep=sleep)
        self.time_interval = time_interval
        self.oldest_year = oldest_year

    def _fetch(self, symbols):
        return self.gateway.fetch_series(symbols, self.time_interval, self.oldest_year)

    def _reconcile(self, conn, results, baseline, instruments):
        return reconcile_series(conn, [r.value for r in results], baseline, instruments=instruments)

    def series(self, symbols: Iterable) -> List[SeriesEntry]:
        """Stored series for the given symbols, ordered by instrument, interval, date."""
        return self.read_cached(as_symbols(symbols))
