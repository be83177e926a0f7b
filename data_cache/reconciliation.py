import logging
import sqlite3
from dataclasses import dataclass, replace
from enum import Enum
from itertools import chain
from typing import Dict, Iterable, List, Optional

from .db import PersistenceError, save_record, savepoint, transaction
from .models import Instrument, LiveSeries, SeriesEntry

logger = logging.getLogger(__name__)


class MatchKind(Enum):
    EXACT = "exact"
    MONTH = "month"
    NONE = "none"


@dataclass(frozen=True)
class Match:
    kind: MatchKind
    record: object = None


NO_MATCH = Match(MatchKind.NONE)


def find_match(live, baseline: List, month_fallback: bool = False) -> Match:
    """
    Locate the stored record a live record should update: same key first,
    then (series only) any record of the same instrument/interval in the
    same calendar month. The first candidate in baseline order wins.
    """
    key = live.key()
    for record in baseline:
        if record.key() == key:
            return Match(MatchKind.EXACT, record)
    if month_fallback and live.record_date is not None:
        month = live.month_key()
        for record in baseline:
            if record.record_date is not None and record.month_key() == month:
                return Match(MatchKind.MONTH, record)
    return NO_MATCH


def has_changed(record, live) -> bool:
    return any(getattr(record, f) != getattr(live, f) for f in record.FIELDS)


def merge(record, live) -> None:
    for f in record.FIELDS:
        setattr(record, f, getattr(live, f))


@dataclass
class ReconcileResult:
    received: int = 0
    saved: int = 0
    created: int = 0
    unchanged: int = 0
    placeholders: int = 0
    failed: int = 0

    def add(self, other: "ReconcileResult") -> "ReconcileResult":
        for f in ("received", "saved", "created", "unchanged", "placeholders", "failed"):
            setattr(self, f, getattr(self, f) + getattr(other, f))
        return self


def reconcile(
    conn: sqlite3.Connection,
    live_records: Iterable,
    baseline: List,
    month_fallback: bool = False,
    instruments: Optional[Dict[str, Instrument]] = None,
) -> ReconcileResult:
    """
    Merge live records into `baseline` and write only what changed, all in
    one transaction. A record that fails to save is logged and skipped;
    any other database error aborts the whole transaction.

    A live record with no stored counterpart is always written. A matched
    record is written to a copy first and copied back onto the baseline
    only once the save succeeds, so later live records in the same pass
    compare against stored values.
    """
    result = ReconcileResult()
    with transaction(conn):
        for live in live_records:
            result.received += 1
            if live.is_placeholder:
                result.placeholders += 1
                continue
            if instruments is not None and not isinstance(live, Instrument) and live.instrument_id is None:
                instrument = instruments.get(live.symbol)
                live.instrument_id = instrument.id if instrument else None
            if isinstance(live, SeriesEntry) and live.time_interval is None:
                logger.error(f"Missing series data point: {live!r}.")

            match = find_match(live, baseline, month_fallback)
            if match.kind is MatchKind.NONE:
                record = type(live).blank_for(live)
            elif has_changed(match.record, live):
                record = replace(match.record)
            else:
                result.unchanged += 1
                continue
            merge(record, live)
            try:
                with savepoint(conn):
                    save_record(conn, record)
            except (PersistenceError, sqlite3.IntegrityError) as e:
                logger.error(f"Error saving {record.TABLE} record: {record!r}, {e}.")
                result.failed += 1
                continue
            result.saved += 1
            if match.kind is MatchKind.NONE:
                result.created += 1
            else:
                # Baseline only ever holds what was written.
                merge(match.record, record)
    logger.debug(f"RECORDS UPDATED: {result.saved} (unchanged: {result.unchanged}, failed: {result.failed}).")
    return result


def reconcile_series(
    conn: sqlite3.Connection,
    live_series: Iterable[LiveSeries],
    baseline: List,
    instruments: Optional[Dict[str, Instrument]] = None,
) -> ReconcileResult:
    """Series variant: month fallback on, each symbol's sequence read up to its end marker."""
    live_series = list(live_series)
    for series in live_series:
        if series.is_placeholder:
            logger.warning(f"No series data points for: {series.symbol}")
    return reconcile(
        conn,
        chain.from_iterable(live_series),
        baseline,
        month_fallback=True,
        instruments=instruments,
    )
