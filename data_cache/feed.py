"""
Feed gateways: fetch live values for a batch of symbols from a market data
vendor. Every requested symbol gets a result; a failed fetch yields an
error placeholder (null prices) plus the failure that caused it, never an
exception.
"""
import datetime as dt
import io
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd
import requests
import yfinance as yf

from .models import END_OF_SERIES, IndexValue, Instrument, LiveSeries, SeriesEntry, TradeQuote

logger = logging.getLogger(__name__)


class FeedFailure(Exception):
    kind = "feed_failure"

    def __init__(self, symbol: Optional[str], message: str = ""):
        super().__init__(message or self.kind)
        self.symbol = symbol
        self.message = message


class ConnectionFailure(FeedFailure):
    kind = "connection_failure"


class ParseFailure(FeedFailure):
    kind = "parse_failure"


class VendorReportedError(FeedFailure):
    kind = "vendor_error"


class EmptyResponse(FeedFailure):
    kind = "empty_response"


@dataclass
class FeedResult:
    symbol: str
    value: object
    failure: Optional[FeedFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class FeedGateway:
    """
    Base gateway. Subclasses implement the single-symbol fetchers
    (`_quote`, `_index`, `_series`) and raise FeedFailure subclasses;
    the batch methods here turn those into placeholder results.
    """

    name = "feed"

    def fetch_quotes(self, symbols: Sequence[str]) -> List[FeedResult]:
        return self._collect(symbols, self._quote, TradeQuote.placeholder)

    def fetch_indexes(self, symbols: Sequence[str]) -> List[FeedResult]:
        return self._collect(symbols, self._index, IndexValue.placeholder)

    def fetch_series(self, symbols: Sequence[str], time_interval: str, oldest_year: int) -> List[FeedResult]:
        return self._collect(
            symbols,
            lambda s: self._series(s, time_interval, oldest_year),
            lambda s: LiveSeries(s, [SeriesEntry.placeholder(s, time_interval)]),
        )

    def fetch_directory(self) -> List[Instrument]:
        raise NotImplementedError(f"{self.name} gateway has no instrument directory")

    def _quote(self, symbol: str) -> TradeQuote:
        raise NotImplementedError

    def _index(self, symbol: str) -> IndexValue:
        raise NotImplementedError

    def _series(self, symbol: str, time_interval: str, oldest_year: int) -> LiveSeries:
        raise NotImplementedError

    def _collect(self, symbols, fetch_one: Callable, placeholder: Callable) -> List[FeedResult]:
        results = []
        outage: Optional[ConnectionFailure] = None
        for symbol in symbols:
            if outage is not None:
                # Vendor unreachable: error out the rest of the batch without calling it again.
                failure = ConnectionFailure(symbol, outage.message)
            else:
                try:
                    results.append(FeedResult(symbol, fetch_one(symbol)))
                    continue
                except ConnectionFailure as e:
                    outage = e
                    failure = e
                except FeedFailure as e:
                    failure = e
            logger.warning(f"FETCH ERROR for: {symbol} ({failure.kind}): {failure}")
            results.append(FeedResult(symbol, placeholder(symbol), failure))
        return results


def _decimal(fields: Dict, key: str, symbol: str) -> Decimal:
    try:
        return Decimal(str(fields[key]).strip())
    except (KeyError, TypeError, InvalidOperation):
        raise ParseFailure(symbol, f"missing or invalid field {key!r}")


def _date(stamp: str, symbol: str) -> dt.date:
    try:
        return dt.date.fromisoformat(str(stamp)[:10])
    except ValueError:
        raise ParseFailure(symbol, f"invalid timestamp {stamp!r}")


class AlphaVantageGateway(FeedGateway):
    """
    Alpha Vantage JSON API. Sample intraday payload:

        {"Meta Data": {"2. Symbol": "MSFT", ...},
         "Time Series (1min)": {"2017-10-20 16:00:00": {"1. open": "78.7000", ...}, ...}}

    or, on failure, {"Error Message": "Invalid API call. ..."}.
    """

    name = "alphavantage"

    SERIES_FUNCTIONS = {
        "daily": ("TIME_SERIES_DAILY_ADJUSTED", "Time Series (Daily)"),
        "weekly": ("TIME_SERIES_WEEKLY_ADJUSTED", "Weekly Adjusted Time Series"),
        "monthly": ("TIME_SERIES_MONTHLY_ADJUSTED", "Monthly Adjusted Time Series"),
    }

    def __init__(
        self,
        api_key: str,
        url: str = "https://www.alphavantage.co/query",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, symbol: Optional[str], params: Dict) -> requests.Response:
        query = dict(params, apikey=self.api_key)
        if symbol is not None:
            query["symbol"] = symbol
        logger.debug(f"FETCH BEGIN for: {symbol} ({params.get('function')})")
        try:
            resp = self.session.get(self.url, params=query, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ConnectionFailure(symbol, str(e))
        logger.debug(f"FETCH END   for: {symbol}")
        return resp

    def _payload(self, symbol: str, params: Dict) -> Dict:
        resp = self._request(symbol, params)
        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseFailure(symbol, f"JSON parse error: {e}")
        if not isinstance(payload, dict):
            raise ParseFailure(symbol, "unexpected payload shape")
        for key in ("Error Message", "Note", "Information"):
            if key in payload:
                raise VendorReportedError(symbol, str(payload[key]))
        if not payload:
            raise EmptyResponse(symbol, "empty response")
        return payload

    @staticmethod
    def _ticks(payload: Dict, key: str, symbol: str):
        """(date, fields) pairs, newest first."""
        series = payload.get(key)
        if not series:
            raise EmptyResponse(symbol, f"no entries under {key!r}")
        if not isinstance(series, dict):
            raise ParseFailure(symbol, f"unexpected {key!r} shape")
        return [(_date(stamp, symbol), series[stamp]) for stamp in sorted(series, reverse=True)]

    def _quote(self, symbol: str) -> TradeQuote:
        payload = self._payload(symbol, {"function": "TIME_SERIES_INTRADAY", "interval": "1min"})
        day, prices = self._ticks(payload, "Time Series (1min)", symbol)[0]
        return TradeQuote(
            symbol=symbol,
            trade_date=day,
            open_price=_decimal(prices, "1. open", symbol),
            high_price=_decimal(prices, "2. high", symbol),
            low_price=_decimal(prices, "3. low", symbol),
            close_price=_decimal(prices, "4. close", symbol),
            volume=_decimal(prices, "5. volume", symbol),
        )

    def _index(self, symbol: str) -> IndexValue:
        payload = self._payload(symbol, {"function": "TIME_SERIES_DAILY"})
        day, prices = self._ticks(payload, "Time Series (Daily)", symbol)[0]
        return IndexValue(
            symbol=symbol,
            index_date=day,
            open_price=_decimal(prices, "1. open", symbol),
            high_price=_decimal(prices, "2. high", symbol),
            low_price=_decimal(prices, "3. low", symbol),
            close_price=_decimal(prices, "4. close", symbol),
            volume=_decimal(prices, "5. volume", symbol),
        )

    def _series(self, symbol: str, time_interval: str, oldest_year: int) -> LiveSeries:
        function, key = self.SERIES_FUNCTIONS[time_interval]
        params = {"function": function}
        if time_interval == "daily":
            params["outputsize"] = "full"
        payload = self._payload(symbol, params)
        entries = []
        for day, fields in self._ticks(payload, key, symbol):
            if day.year < oldest_year:
                entries.append(END_OF_SERIES)
                break
            entries.append(
                SeriesEntry(
                    symbol=symbol,
                    time_interval=time_interval,
                    series_date=day,
                    open_price=_decimal(fields, "1. open", symbol),
                    high_price=_decimal(fields, "2. high", symbol),
                    low_price=_decimal(fields, "3. low", symbol),
                    close_price=_decimal(fields, "4. close", symbol),
                    adjusted_close_price=_decimal(fields, "5. adjusted close", symbol),
                    volume=_decimal(fields, "6. volume", symbol),
                    dividend_amount=_decimal(fields, "7. dividend amount", symbol),
                )
            )
        return LiveSeries(symbol, entries)

    def fetch_directory(self) -> List[Instrument]:
        """Active listings (LISTING_STATUS CSV) as unsaved instruments."""
        try:
            resp = self._request(None, {"function": "LISTING_STATUS"})
            df = pd.read_csv(io.StringIO(resp.text))
        except FeedFailure as e:
            logger.warning(f"Directory fetch failed ({e.kind}): {e}")
            return []
        except (ValueError, pd.errors.ParserError) as e:
            logger.warning(f"Directory parse error: {e}")
            return []
        if "symbol" not in df.columns:
            logger.warning("Directory response has no symbol column")
            return []
        if "name" not in df.columns:
            df["name"] = None
        df = df.dropna(subset=["symbol"]).drop_duplicates(subset=["symbol"])
        return [
            Instrument(symbol=str(r.symbol).strip().upper(), name=None if pd.isna(r.name) else str(r.name))
            for r in df[["symbol", "name"]].itertuples(index=False)
        ]


def _frame_decimal(row, col: str) -> Optional[Decimal]:
    value = row.get(col)
    if value is None or pd.isna(value):
        return None
    return Decimal(str(float(value)))


class YahooGateway(FeedGateway):
    """yfinance-backed gateway for quotes, index levels and series."""

    name = "yahoo"

    INTERVALS = {"daily": "1d", "weekly": "1wk", "monthly": "1mo"}

    def _download(self, symbol: str, **kwargs) -> pd.DataFrame:
        try:
            df = yf.download(symbol, progress=False, auto_adjust=False, **kwargs)
        except Exception as e:
            raise ConnectionFailure(symbol, str(e))
        if df is None or df.empty:
            raise EmptyResponse(symbol, "no rows returned")
        if isinstance(df.columns, pd.MultiIndex):
            df.columns = df.columns.droplevel(1)
        df = df.copy()
        df.index = pd.DatetimeIndex(df.index).tz_localize(None)
        return df.sort_index(ascending=False)

    def _last_row(self, symbol: str):
        df = self._download(symbol, period="5d", interval="1d")
        return df.index[0].date(), df.iloc[0]

    def _quote(self, symbol: str) -> TradeQuote:
        day, row = self._last_row(symbol)
        return TradeQuote(
            symbol=symbol,
            trade_date=day,
            open_price=_frame_decimal(row, "Open"),
            high_price=_frame_decimal(row, "High"),
            low_price=_frame_decimal(row, "Low"),
            close_price=_frame_decimal(row, "Close"),
            volume=_frame_decimal(row, "Volume"),
        )

    def _index(self, symbol: str) -> IndexValue:
        day, row = self._last_row(symbol)
        return IndexValue(
            symbol=symbol,
            index_date=day,
            open_price=_frame_decimal(row, "Open"),
            high_price=_frame_decimal(row, "High"),
            low_price=_frame_decimal(row, "Low"),
            close_price=_frame_decimal(row, "Close"),
            volume=_frame_decimal(row, "Volume"),
        )

    def _series(self, symbol: str, time_interval: str, oldest_year: int) -> LiveSeries:
        df = self._download(
            symbol,
            start=dt.date(oldest_year, 1, 1),
            interval=self.INTERVALS[time_interval],
            actions=True,
        )
        entries = []
        for stamp, row in df.iterrows():
            entries.append(
                SeriesEntry(
                    symbol=symbol,
                    time_interval=time_interval,
                    series_date=stamp.date(),
                    open_price=_frame_decimal(row, "Open"),
                    high_price=_frame_decimal(row, "High"),
                    low_price=_frame_decimal(row, "Low"),
                    close_price=_frame_decimal(row, "Close"),
                    adjusted_close_price=_frame_decimal(row, "Adj Close"),
                    volume=_frame_decimal(row, "Volume"),
                    dividend_amount=_frame_decimal(row, "Dividends"),
                )
            )
        entries.append(END_OF_SERIES)
        return LiveSeries(symbol, entries)
