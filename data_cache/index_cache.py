from typing import Iterable, List

from .base import FeedCache, as_symbols
from .models import IndexValue
from .trade_cache import latest_per_symbol


class IndexCache(FeedCache):
    model = IndexValue
    label = "INDEX BULK LOAD"

    def _fetch(self, symbols):
        return self.gateway.fetch_indexes(symbols)

    def last_indexes(self, symbols: Iterable, live: bool = False) -> List[IndexValue]:
        """Latest value for each index symbol, from the feed when live=True."""
        wanted = as_symbols(symbols)
        if live:
            return self.read_live(wanted)
        return latest_per_symbol(self.read_cached(wanted), wanted, IndexValue.placeholder)
