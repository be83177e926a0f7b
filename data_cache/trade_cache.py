"""Latest trade prices per instrument."""
from typing import Iterable, List

from .base import FeedCache, as_symbols
from .models import TradeQuote


def latest_per_symbol(records, symbols: List[str], placeholder) -> list:
    """Last record per symbol from an (instrument, date)-ordered list, in `symbols` order."""
    latest = {}
    for r in records:
        latest[r.symbol] = r
    return [latest.get(s) or placeholder(s) for s in symbols]


class TradeCache(FeedCache):
    model = TradeQuote
    label = "TRADE BULK LOAD"

    def _fetch(self, symbols):
        return self.gateway.fetch_quotes(symbols)

    def last_prices(self, symbols: Iterable, live: bool = False) -> List[TradeQuote]:
        """
        Latest price per symbol. With live=True prices come from the feed
        (and are stored); otherwise from the database. Symbols without data
        yield placeholders with a null close price.
        """
        wanted = as_symbols(symbols)
        if live:
            return self.read_live(wanted)
        return latest_per_symbol(self.read_cached(wanted), wanted, TradeQuote.placeholder)
