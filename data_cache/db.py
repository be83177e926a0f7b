import datetime as dt
import logging
import os
import sqlite3
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import env_db_path
from .models import IndexValue, Instrument, SeriesEntry, TradeQuote

logger = logging.getLogger(__name__)

DECIMAL_COLUMNS = {
    "open_price",
    "high_price",
    "low_price",
    "close_price",
    "adjusted_close_price",
    "volume",
    "dividend_amount",
}
DATE_COLUMNS = {"series_date", "trade_date", "index_date"}

# Decimals and dates are stored as TEXT so values round-trip exactly.
sqlite3.register_adapter(Decimal, str)
sqlite3.register_adapter(dt.date, lambda d: d.isoformat())


class PersistenceError(Exception):
    """A single record could not be written; the rest of the batch is unaffected."""


def init_db(db_path: Optional[str] = None):
    path = db_path or env_db_path()
    Path(os.path.dirname(os.path.abspath(path))).mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(path) as conn:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS instruments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL UNIQUE,
                name TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS series (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instrument_id INTEGER NOT NULL REFERENCES instruments(id),
                time_interval TEXT NOT NULL,
                series_date TEXT NOT NULL,
                open_price TEXT,
                high_price TEXT,
                low_price TEXT,
                close_price TEXT,
                adjusted_close_price TEXT,
                volume TEXT,
                dividend_amount TEXT,
                UNIQUE (instrument_id, time_interval, series_date)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instrument_id INTEGER NOT NULL REFERENCES instruments(id),
                trade_date TEXT NOT NULL,
                open_price TEXT,
                high_price TEXT,
                low_price TEXT,
                close_price TEXT,
                volume TEXT,
                UNIQUE (instrument_id, trade_date)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS indexes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instrument_id INTEGER NOT NULL REFERENCES instruments(id),
                index_date TEXT NOT NULL,
                open_price TEXT,
                high_price TEXT,
                low_price TEXT,
                close_price TEXT,
                volume TEXT,
                UNIQUE (instrument_id, index_date)
            )
            """
        )
        conn.commit()


@contextmanager
def get_conn(db_path: Optional[str] = None):
    """Open a connection in autocommit mode; use `transaction` to group writes."""
    path = db_path or env_db_path()
    conn = sqlite3.connect(path, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection):
    """
    One batch = one transaction. Anything escaping the block (an
    infrastructure failure) rolls back every write made inside it.
    """
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


@contextmanager
def savepoint(conn: sqlite3.Connection, name: str = "record"):
    """Nested scope inside `transaction`; a failure undoes only this scope's writes."""
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield conn
    except BaseException:
        conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
        conn.execute(f"RELEASE SAVEPOINT {name}")
        raise
    else:
        conn.execute(f"RELEASE SAVEPOINT {name}")


def _unique(symbols: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for s in symbols:
        if s not in seen:
            seen.add(s)
            out.append(s)
    return out


def _convert(column: str, value):
    if value is None:
        return None
    if column in DECIMAL_COLUMNS:
        try:
            return Decimal(str(value))
        except InvalidOperation:
            logger.warning(f"Unreadable decimal in column {column}: {value!r}")
            return None
    if column in DATE_COLUMNS and isinstance(value, str):
        return dt.date.fromisoformat(value[:10])
    return value


def _row_to_record(model, row: sqlite3.Row):
    return model(**{k: _convert(k, row[k]) for k in row.keys()})


def load_instruments(conn: sqlite3.Connection, symbols: Optional[Iterable[str]] = None) -> List[Instrument]:
    if symbols is None:
        rows = conn.execute("SELECT id, symbol, name FROM instruments ORDER BY symbol").fetchall()
    else:
        wanted = _unique(symbols)
        if not wanted:
            return []
        placeholders = ",".join(["?"] * len(wanted))
        rows = conn.execute(
            f"SELECT id, symbol, name FROM instruments WHERE symbol IN ({placeholders}) ORDER BY symbol",
            wanted,
        ).fetchall()
    return [_row_to_record(Instrument, r) for r in rows]


def instruments_by_symbol(conn: sqlite3.Connection, symbols: Iterable[str]) -> Dict[str, Instrument]:
    return {i.symbol: i for i in load_instruments(conn, symbols)}


def _order_by(model) -> str:
    if model is SeriesEntry:
        return "t.instrument_id, t.time_interval, t.series_date"
    return f"t.instrument_id, t.{model.DATE_FIELD}"


def load_baseline(conn: sqlite3.Connection, model, symbols: Iterable[str]) -> list:
    """
    Stored records for the given instrument symbols, distinct and ordered by
    (instrument, [interval,] date). The owning symbol comes from the join,
    so no per-record instrument lookups are needed.
    """
    if model not in (SeriesEntry, TradeQuote, IndexValue):
        raise ValueError(f"No baseline table for {model!r}")
    wanted = _unique(symbols)
    if not wanted:
        return []
    placeholders = ",".join(["?"] * len(wanted))
    sql = (
        f"SELECT DISTINCT t.*, i.symbol AS symbol FROM {model.TABLE} t "
        f"JOIN instruments i ON i.id = t.instrument_id "
        f"WHERE i.symbol IN ({placeholders}) ORDER BY {_order_by(model)}"
    )
    return [_row_to_record(model, r) for r in conn.execute(sql, wanted).fetchall()]


def save_record(conn: sqlite3.Connection, record) -> None:
    """Insert a new record or update a stored one by id."""
    if record.is_placeholder:
        raise PersistenceError(f"Refusing to store error placeholder for {getattr(record, 'symbol', None)}")
    if not isinstance(record, Instrument) and record.instrument_id is None:
        raise PersistenceError(f"Unknown instrument for symbol {record.symbol!r}")
    cols = list(record.FIELDS)
    if not isinstance(record, Instrument):
        cols = ["instrument_id"] + cols
    values = [getattr(record, c) for c in cols]
    if record.id is None:
        placeholders = ",".join(["?"] * len(cols))
        cur = conn.execute(
            f"INSERT INTO {record.TABLE} ({','.join(cols)}) VALUES ({placeholders})",
            values,
        )
        record.id = cur.lastrowid
    else:
        updates = ",".join([f"{c}=?" for c in cols])
        conn.execute(f"UPDATE {record.TABLE} SET {updates} WHERE id=?", values + [record.id])
