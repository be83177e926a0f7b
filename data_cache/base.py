import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .batching import run_batches
from .config import CacheConfig
from .db import get_conn, instruments_by_symbol, load_baseline
from .feed import FeedGateway, FeedResult
from .models import Instrument
from .reconciliation import ReconcileResult, reconcile

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Aggregate counts for one bulk load."""

    received: int = 0
    processed: int = 0
    batches: int = 0
    saved: int = 0
    created: int = 0
    unchanged: int = 0
    placeholders: int = 0
    failed: int = 0


def as_symbols(items: Iterable) -> List[str]:
    """Accept symbols or Instrument records."""
    return [i.symbol if isinstance(i, Instrument) else str(i).strip().upper() for i in items]


class FeedCache:
    """
    Bulk load and read path shared by the trade, index and series caches:
    per batch, load the stored baseline, fetch live values, reconcile.
    """

    model = None
    month_fallback = False
    label = "BULK LOAD"

    def __init__(
        self,
        gateway: FeedGateway,
        config: CacheConfig,
        db_path: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.config = config
        self.db_path = db_path
        self.sleep = sleep

    def _fetch(self, symbols: List[str]) -> List[FeedResult]:
        raise NotImplementedError

    def _reconcile(self, conn, results: List[FeedResult], baseline, instruments) -> ReconcileResult:
        return reconcile(
            conn,
            [r.value for r in results],
            baseline,
            month_fallback=self.month_fallback,
            instruments=instruments,
        )

    def _sync_batch(self, symbols: List[str], collected: Optional[List[FeedResult]] = None) -> ReconcileResult:
        with get_conn(self.db_path) as conn:
            baseline = load_baseline(conn, self.model, symbols)  # Database records as a baseline.
            instruments = instruments_by_symbol(conn, symbols)
            results = self._fetch(symbols)
            if collected is not None:
                collected.extend(results)
            return self._reconcile(conn, results, baseline, instruments)

    def _sync(self, symbols: List[str], collected: Optional[List[FeedResult]] = None) -> SyncReport:
        totals = ReconcileResult()
        batches = run_batches(
            symbols,
            self.config,
            lambda batch: totals.add(self._sync_batch(batch, collected)),
            sleep=self.sleep,
            label=self.label,
        )
        report = SyncReport(
            received=batches.received,
            processed=batches.processed,
            batches=batches.batches,
            saved=totals.saved,
            created=totals.created,
            unchanged=totals.unchanged,
            placeholders=totals.placeholders,
            failed=totals.failed,
        )
        logger.info(
            f"{self.label} persisted: {report.saved} (created: {report.created}, "
            f"unchanged: {report.unchanged}, placeholders: {report.placeholders}, failed: {report.failed})"
        )
        return report

    def bulk_load(self, symbols: Iterable) -> SyncReport:
        """Fetch and store live values for all symbols, batch by batch."""
        return self._sync(as_symbols(symbols))

    def read_cached(self, symbols: Iterable) -> list:
        """Stored records only; the vendor is not contacted."""
        with get_conn(self.db_path) as conn:
            return load_baseline(conn, self.model, as_symbols(symbols))

    def read_live(self, symbols: Iterable) -> list:
        """
        Fetch (and store) live values, returning one result value per symbol
        in request order; failed fetches come back as error placeholders.
        """
        collected: List[FeedResult] = []
        self._sync(as_symbols(symbols), collected)
        return [r.value for r in collected]
