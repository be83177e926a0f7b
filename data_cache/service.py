import logging
from typing import Iterable, List, Optional

from .base import SyncReport
from .config import Settings
from .db import init_db
from .feed import AlphaVantageGateway, FeedGateway
from .index_cache import IndexCache
from .instrument_cache import InstrumentCache
from .models import IndexValue, Instrument, SeriesEntry, TradeQuote
from .series_cache import SeriesCache
from .trade_cache import TradeCache

logger = logging.getLogger(__name__)


class DataCache:
    """
    Facade for data cache operations. All requests for cached market data
    should go through here.
    - bulk_load / refresh_instruments: maintain the instrument directory
    - load_prices / load_indexes / load_series: throttled feed synchronization
    - last_prices / last_indexes / series: reads, from the DB unless live=True
    """

    def __init__(self, settings: Settings, gateway: Optional[FeedGateway] = None):
        self.settings = settings
        self.gateway = gateway or AlphaVantageGateway(
            settings.alpha_vantage_api_key,
            url=settings.alpha_vantage_url,
            timeout=settings.request_timeout,
        )
        db_path = settings.db_path
        self.instrument_cache = InstrumentCache(self.gateway, settings.instrument, db_path=db_path)
        self.trade_cache = TradeCache(self.gateway, settings.trade, db_path=db_path)
        self.index_cache = IndexCache(self.gateway, settings.index, db_path=db_path)
        self.series_cache = SeriesCache(
            self.gateway,
            settings.series,
            db_path=db_path,
            time_interval=settings.series_interval,
            oldest_year=settings.series_oldest_year,
        )

    @classmethod
    def from_env(cls) -> "DataCache":
        return cls(Settings.from_env())

    def initialize(self):
        init_db(self.settings.db_path)
        logger.info(f"Data cache initialized at {self.settings.db_path} (feed: {self.gateway.name})")

    def bulk_load(self, instrument_data: Iterable) -> SyncReport:
        return self.instrument_cache.bulk_load(instrument_data)

    def refresh_instruments(self) -> SyncReport:
        return self.instrument_cache.refresh_from_feed()

    def instruments(self, symbols: Optional[Iterable[str]] = None) -> List[Instrument]:
        return self.instrument_cache.instruments(symbols)

    def load_prices(self, symbols: Iterable) -> SyncReport:
        return self.trade_cache.bulk_load(symbols)

    def load_indexes(self, symbols: Iterable) -> SyncReport:
        return self.index_cache.bulk_load(symbols)

    def load_series(self, symbols: Iterable) -> SyncReport:
        return self.series_cache.bulk_load(symbols)

    def last_prices(self, symbols: Iterable, live: bool = False) -> List[TradeQuote]:
        return self.trade_cache.last_prices(symbols, live)

    def last_indexes(self, symbols: Iterable, live: bool = False) -> List[IndexValue]:
        return self.index_cache.last_indexes(symbols, live)

    def series(self, symbols: Iterable) -> List[SeriesEntry]:
        return self.series_cache.series(symbols)
