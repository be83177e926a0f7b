"""Record types stored in, and fetched for, the data cache."""
import datetime as dt
from dataclasses import dataclass, fields as dc_fields
from decimal import Decimal
from itertools import takewhile
from typing import ClassVar, Iterable, Iterator, Optional, Tuple

PRICE_FIELDS = ("open_price", "high_price", "low_price", "close_price", "volume")

# Marks the end of a live series; anything after it is never read.
END_OF_SERIES = None


@dataclass
class Instrument:
    symbol: str
    name: Optional[str] = None
    id: Optional[int] = None

    TABLE: ClassVar[str] = "instruments"
    FIELDS: ClassVar[Tuple[str, ...]] = ("symbol", "name")

    def key(self):
        return (self.symbol,)

    @classmethod
    def blank_for(cls, live: "Instrument") -> "Instrument":
        return cls(symbol=live.symbol)

    @property
    def is_placeholder(self) -> bool:
        return False


class _InstrumentRecord:
    """Shared behavior for records owned by an instrument."""

    TABLE: ClassVar[str]
    FIELDS: ClassVar[Tuple[str, ...]]
    DATE_FIELD: ClassVar[str]
    VALUE_FIELDS: ClassVar[Tuple[str, ...]] = PRICE_FIELDS

    @property
    def record_date(self) -> Optional[dt.date]:
        return getattr(self, self.DATE_FIELD)

    def key(self):
        return (self.instrument_id, self.record_date)

    @property
    def is_placeholder(self) -> bool:
        """True for a failed-fetch stand-in: every price/volume field is null."""
        return all(getattr(self, f) is None for f in self.VALUE_FIELDS)

    @classmethod
    def blank_for(cls, live):
        return cls(instrument_id=live.instrument_id, symbol=live.symbol)

    def values(self):
        return {f.name: getattr(self, f.name) for f in dc_fields(self)}


@dataclass
class TradeQuote(_InstrumentRecord):
    instrument_id: Optional[int] = None
    trade_date: Optional[dt.date] = None
    open_price: Optional[Decimal] = None
    high_price: Optional[Decimal] = None
    low_price: Optional[Decimal] = None
    close_price: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    id: Optional[int] = None
    symbol: Optional[str] = None

    TABLE: ClassVar[str] = "trades"
    DATE_FIELD: ClassVar[str] = "trade_date"
    FIELDS: ClassVar[Tuple[str, ...]] = ("trade_date",) + PRICE_FIELDS

    @classmethod
    def placeholder(cls, symbol: str) -> "TradeQuote":
        return cls(symbol=symbol)


@dataclass
class IndexValue(_InstrumentRecord):
    instrument_id: Optional[int] = None
    index_date: Optional[dt.date] = None
    open_price: Optional[Decimal] = None
    high_price: Optional[Decimal] = None
    low_price: Optional[Decimal] = None
    close_price: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    id: Optional[int] = None
    symbol: Optional[str] = None

    TABLE: ClassVar[str] = "indexes"
    DATE_FIELD: ClassVar[str] = "index_date"
    FIELDS: ClassVar[Tuple[str, ...]] = ("index_date",) + PRICE_FIELDS

    @classmethod
    def placeholder(cls, symbol: str) -> "IndexValue":
        return cls(symbol=symbol)


@dataclass
class SeriesEntry(_InstrumentRecord):
    instrument_id: Optional[int] = None
    time_interval: Optional[str] = None
    series_date: Optional[dt.date] = None
    open_price: Optional[Decimal] = None
    high_price: Optional[Decimal] = None
    low_price: Optional[Decimal] = None
    close_price: Optional[Decimal] = None
    adjusted_close_price: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    dividend_amount: Optional[Decimal] = None
    id: Optional[int] = None
    symbol: Optional[str] = None

    TABLE: ClassVar[str] = "series"
    DATE_FIELD: ClassVar[str] = "series_date"
    VALUE_FIELDS: ClassVar[Tuple[str, ...]] = PRICE_FIELDS + ("adjusted_close_price", "dividend_amount")
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "time_interval",
        "series_date",
        "open_price",
        "high_price",
        "low_price",
        "close_price",
        "adjusted_close_price",
        "volume",
        "dividend_amount",
    )

    def key(self):
        return (self.instrument_id, self.time_interval, self.series_date)

    def month_key(self):
        d = self.series_date
        return (self.instrument_id, self.time_interval, d.year if d else None, d.month if d else None)

    @classmethod
    def placeholder(cls, symbol: str, time_interval: Optional[str] = None) -> "SeriesEntry":
        return cls(symbol=symbol, time_interval=time_interval)


class LiveSeries:
    """
    One symbol's fetched series: a finite, restartable sequence.

    Entries are kept as given, but iteration stops at the first
    END_OF_SERIES marker, so an early cutoff never leaks later entries.
    """

    def __init__(self, symbol: str, entries: Iterable[Optional[SeriesEntry]] = ()):
        self.symbol = symbol
        self.entries = tuple(entries)

    def __iter__(self) -> Iterator[SeriesEntry]:
        return takewhile(lambda e: e is not END_OF_SERIES, self.entries)

    def __len__(self):
        return sum(1 for _ in self)

    @property
    def is_placeholder(self) -> bool:
        return all(e.is_placeholder for e in self)

    def __repr__(self):
        return f"LiveSeries({self.symbol!r}, {len(self)} entries)"
