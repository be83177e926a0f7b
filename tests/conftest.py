import os
import sys
from dataclasses import replace

import pytest

# Ensure workspace root is on sys.path so we can import data_cache as a package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from data_cache import db as dbmod
from data_cache.feed import EmptyResponse, FeedGateway
from data_cache.models import Instrument, LiveSeries


class FakeGateway(FeedGateway):
    """In-memory gateway: canned values per symbol, optional failures, recorded calls."""

    name = "fake"

    def __init__(self, quotes=None, indexes=None, series=None, failures=None, directory=None):
        self.quotes = quotes or {}
        self.indexes = indexes or {}
        self.series = series or {}
        self.failures = failures or {}
        self.directory = directory or []
        self.calls = []

    def fetch_quotes(self, symbols):
        self.calls.append(list(symbols))
        return super().fetch_quotes(symbols)

    def fetch_indexes(self, symbols):
        self.calls.append(list(symbols))
        return super().fetch_indexes(symbols)

    def fetch_series(self, symbols, time_interval, oldest_year):
        self.calls.append(list(symbols))
        return super().fetch_series(symbols, time_interval, oldest_year)

    def fetch_directory(self):
        return list(self.directory)

    def _lookup(self, table, symbol):
        if symbol in self.failures:
            raise self.failures[symbol]
        if symbol not in table:
            raise EmptyResponse(symbol, "no canned data")
        return table[symbol]

    def _quote(self, symbol):
        return replace(self._lookup(self.quotes, symbol), symbol=symbol)

    def _index(self, symbol):
        return replace(self._lookup(self.indexes, symbol), symbol=symbol)

    def _series(self, symbol, time_interval, oldest_year):
        entries = self._lookup(self.series, symbol)
        return LiveSeries(symbol, [e if e is None else replace(e, symbol=symbol) for e in entries])


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "cache.sqlite")
    dbmod.init_db(path)
    return path


@pytest.fixture
def conn(db_path):
    with dbmod.get_conn(db_path) as c:
        yield c


@pytest.fixture
def sleep():
    return SleepRecorder()


def add_instruments(db_path, symbols):
    """Insert instruments and return {symbol: Instrument}."""
    out = {}
    with dbmod.get_conn(db_path) as c:
        with dbmod.transaction(c):
            for s in symbols:
                inst = Instrument(symbol=s, name=f"{s} Corp")
                dbmod.save_record(c, inst)
                out[s] = inst
    return out


def add_records(db_path, records):
    with dbmod.get_conn(db_path) as c:
        with dbmod.transaction(c):
            for r in records:
                dbmod.save_record(c, r)
    return records
