import datetime as dt
import json
from decimal import Decimal

import pandas as pd
import requests

from data_cache import feed
from data_cache.feed import (
    AlphaVantageGateway,
    ConnectionFailure,
    EmptyResponse,
    ParseFailure,
    VendorReportedError,
)
from data_cache.models import END_OF_SERIES

INTRADAY = {
    "Meta Data": {"2. Symbol": "MSFT", "4. Interval": "1min"},
    "Time Series (1min)": {
        "2017-10-20 15:59:00": {
            "1. open": "78.7000", "2. high": "78.7200", "3. low": "78.6900",
            "4. close": "78.7000", "5. volume": "320215",
        },
        "2017-10-20 16:00:00": {
            "1. open": "78.7000", "2. high": "78.8100", "3. low": "78.6950",
            "4. close": "78.8100", "5. volume": "2663315",
        },
    },
}


def monthly_bar(close):
    return {
        "1. open": "10.0000", "2. high": "11.0000", "3. low": "9.0000", "4. close": close,
        "5. adjusted close": close, "6. volume": "5000", "7. dividend amount": "0.0000",
    }


MONTHLY = {
    "Meta Data": {"2. Symbol": "IBM"},
    "Monthly Adjusted Time Series": {
        "2024-02-29": monthly_bar("10.5000"),
        "2024-01-31": monthly_bar("10.0000"),
        "2023-12-29": monthly_bar("9.5000"),
        "2022-12-30": monthly_bar("8.0000"),
    },
}


class FakeResponse:
    def __init__(self, body, status=200):
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.status_code = status

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Answers by symbol (or by function when no symbol is sent)."""

    def __init__(self, bodies):
        self.bodies = bodies
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append(dict(params))
        body = self.bodies[params.get("symbol", params["function"])]
        if isinstance(body, Exception):
            raise body
        return body if isinstance(body, FakeResponse) else FakeResponse(body)


def gateway(bodies):
    return AlphaVantageGateway("demo", session=FakeSession(bodies))


def test_quote_uses_newest_tick():
    gw = gateway({"MSFT": INTRADAY})
    [result] = gw.fetch_quotes(["MSFT"])
    assert result.ok
    quote = result.value
    assert quote.symbol == "MSFT"
    assert quote.trade_date == dt.date(2017, 10, 20)
    assert quote.close_price == Decimal("78.8100")
    assert quote.volume == Decimal("2663315")
    sent = gw.session.requests[0]
    assert sent["function"] == "TIME_SERIES_INTRADAY"
    assert sent["interval"] == "1min"
    assert sent["apikey"] == "demo"


def test_vendor_error_becomes_placeholder():
    gw = gateway({
        "ZZZ": {"Error Message": "Invalid API call. Please retry or visit the documentation."},
        "MSFT": INTRADAY,
    })
    results = gw.fetch_quotes(["ZZZ", "MSFT"])

    assert isinstance(results[0].failure, VendorReportedError)
    assert results[0].value.symbol == "ZZZ"
    assert results[0].value.close_price is None
    assert results[0].value.is_placeholder
    assert results[1].ok


def test_empty_and_unparseable_payloads_fail_per_symbol():
    gw = gateway({
        "EMPTY": {},
        "NOSERIES": {"Meta Data": {}, "Time Series (1min)": {}},
        "BADJSON": FakeResponse("<html>oops</html>"),
        "BADNUM": {"Time Series (1min)": {"2017-10-20 16:00:00": {"1. open": "n/a"}}},
    })
    results = gw.fetch_quotes(["EMPTY", "NOSERIES", "BADJSON", "BADNUM"])

    assert isinstance(results[0].failure, EmptyResponse)
    assert isinstance(results[1].failure, EmptyResponse)
    assert isinstance(results[2].failure, ParseFailure)
    assert isinstance(results[3].failure, ParseFailure)
    assert all(r.value.is_placeholder for r in results)


def test_throttle_notice_is_a_vendor_error():
    gw = gateway({"IBM": {"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute."}})
    [result] = gw.fetch_indexes(["IBM"])
    assert isinstance(result.failure, VendorReportedError)
    assert result.value.close_price is None


def test_connection_failure_errors_out_rest_of_batch():
    gw = gateway({
        "AAA": INTRADAY,
        "BBB": requests.ConnectionError("connection refused"),
        "CCC": INTRADAY,
    })
    results = gw.fetch_quotes(["AAA", "BBB", "CCC"])

    assert results[0].ok
    assert isinstance(results[1].failure, ConnectionFailure)
    assert isinstance(results[2].failure, ConnectionFailure)
    assert [r.value.symbol for r in results] == ["AAA", "BBB", "CCC"]
    assert [r["symbol"] for r in gw.session.requests] == ["AAA", "BBB"]


def test_http_error_status_is_connection_failure():
    gw = gateway({"AAA": FakeResponse({}, status=503)})
    [result] = gw.fetch_quotes(["AAA"])
    assert isinstance(result.failure, ConnectionFailure)


def test_series_stops_at_oldest_year():
    gw = gateway({"IBM": MONTHLY})
    [result] = gw.fetch_series(["IBM"], "monthly", oldest_year=2023)

    live = result.value
    assert live.entries[-1] is END_OF_SERIES
    dates = [e.series_date for e in live]
    assert dates == [dt.date(2024, 2, 29), dt.date(2024, 1, 31), dt.date(2023, 12, 29)]
    assert all(e.time_interval == "monthly" for e in live)
    assert list(live)[0].adjusted_close_price == Decimal("10.5000")
    assert gw.session.requests[0]["function"] == "TIME_SERIES_MONTHLY_ADJUSTED"


def test_series_failure_yields_placeholder_series():
    gw = gateway({"IBM": {"Error Message": "bad symbol"}})
    [result] = gw.fetch_series(["IBM"], "monthly", oldest_year=2000)
    assert result.value.symbol == "IBM"
    assert result.value.is_placeholder


def test_directory_listing():
    csv = "symbol,name,exchange,assetType,ipoDate,delistingDate,status\n" \
          "A,Agilent Technologies Inc,NYSE,Stock,1999-11-18,null,Active\n" \
          "aa,Alcoa Corp,NYSE,Stock,2016-10-18,null,Active\n"
    gw = gateway({"LISTING_STATUS": FakeResponse(csv)})

    instruments = gw.fetch_directory()

    assert [(i.symbol, i.name) for i in instruments] == [("A", "Agilent Technologies Inc"), ("AA", "Alcoa Corp")]


def test_directory_connection_failure_returns_nothing():
    gw = gateway({"LISTING_STATUS": requests.Timeout("timed out")})
    assert gw.fetch_directory() == []


def yahoo_frame():
    idx = pd.DatetimeIndex(["2024-05-01", "2024-05-02"])
    return pd.DataFrame(
        {
            "Open": [189.0, 190.0],
            "High": [191.0, 192.5],
            "Low": [188.0, 189.5],
            "Close": [190.25, 191.5],
            "Adj Close": [190.25, 191.5],
            "Volume": [1000.0, 2000.0],
            "Dividends": [0.0, 0.24],
        },
        index=idx,
    )


def test_yahoo_quote_and_series(monkeypatch):

    monkeypatch.setattr(feed.yf, "download", lambda *a, **k: yahoo_frame())
    gw = feed.YahooGateway()

    [quote] = gw.fetch_quotes(["AAPL"])
    assert quote.ok
    assert quote.value.trade_date == dt.date(2024, 5, 2)
    assert quote.value.close_price == Decimal("191.5")
    assert quote.value.volume == Decimal("2000")

    [series] = gw.fetch_series(["AAPL"], "daily", oldest_year=2024)
    entries = list(series.value)
    assert [e.series_date for e in entries] == [dt.date(2024, 5, 2), dt.date(2024, 5, 1)]
    assert entries[0].dividend_amount == Decimal("0.24")
    assert series.value.entries[-1] is END_OF_SERIES

    monkeypatch.setattr(feed.yf, "download", lambda *a, **k: pd.DataFrame())
    [empty] = gw.fetch_indexes(["^GSPC"])
    assert isinstance(empty.failure, EmptyResponse)
    assert empty.value.symbol == "^GSPC"
