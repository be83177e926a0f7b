import logging
import time
from typing import Callable, Iterable, List, Optional

from .base import SyncReport
from .batching import run_batches
from .config import CacheConfig
from .db import get_conn, load_instruments
from .feed import FeedGateway
from .models import Instrument
from .reconciliation import ReconcileResult, reconcile

logger = logging.getLogger(__name__)


def _as_instrument(item) -> Optional[Instrument]:
    if isinstance(item, Instrument):
        symbol, name = item.symbol, item.name
    else:
        symbol, name = item.get("symbol"), item.get("name")
    symbol = str(symbol or "").strip().upper()
    if not symbol:
        logger.warning(f"Skipping instrument without a symbol: {item!r}")
        return None
    return Instrument(symbol=symbol, name=name)


class InstrumentCache:
    """The instrument directory: one row per symbol, refreshed in bulk."""

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

    def _load_batch(self, batch: List[Instrument]) -> ReconcileResult:
        with get_conn(self.db_path) as conn:
            baseline = load_instruments(conn, [i.symbol for i in batch])
            return reconcile(conn, batch, baseline)

    def bulk_load(self, instrument_data: Iterable) -> SyncReport:
        """
        Update the directory from [{symbol, name}, ...] (or Instrument records).
        New symbols are created, changed names updated, the rest left alone.
        """
        entries = [i for i in (_as_instrument(d) for d in instrument_data) if i is not None]
        totals = ReconcileResult()
        batches = run_batches(
            entries,
            self.config,
            lambda batch: totals.add(self._load_batch(batch)),
            sleep=self.sleep,
            label="INSTRUMENT BULK LOAD",
        )
        logger.info(f"INSTRUMENTS UPDATED: {totals.saved} (created: {totals.created}, failed: {totals.failed})")
        return SyncReport(
            received=batches.received,
            processed=batches.processed,
            batches=batches.batches,
            saved=totals.saved,
            created=totals.created,
            unchanged=totals.unchanged,
            failed=totals.failed,
        )

    def refresh_from_feed(self) -> SyncReport:
        """Pull the vendor's listing and bulk load it."""
        return self.bulk_load(self.gateway.fetch_directory())

    def instruments(self, symbols: Optional[Iterable[str]] = None) -> List[Instrument]:
        with get_conn(self.db_path) as conn:
            if symbols is None:
                return load_instruments(conn)
            return load_instruments(conn, [str(s).strip().upper() for s in symbols])

    read_cached = instruments
