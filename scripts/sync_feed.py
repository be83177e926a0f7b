#!/usr/bin/env python3
"""Small CLI to synchronize feed data into the cache DB.

Usage:
  sync_feed.py instruments
  sync_feed.py prices|indexes|series SYMBOL [SYMBOL ...]
  sync_feed.py last-prices SYMBOL [SYMBOL ...]
"""
import sys
import logging

import pandas as pd

from data_cache.service import DataCache

logging.basicConfig(level=logging.INFO)

COMMANDS = ("instruments", "prices", "indexes", "series", "last-prices")


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(f"Usage: sync_feed.py <{'|'.join(COMMANDS)}> [SYMBOL ...]")
        sys.exit(2)
    command = sys.argv[1]
    symbols = [s.strip().upper() for s in sys.argv[2:] if s.strip()]
    if command != "instruments" and not symbols:
        print(f"{command} needs at least one symbol")
        sys.exit(2)

    cache = DataCache.from_env()
    cache.initialize()
    if command == "instruments":
        report = cache.refresh_instruments()
    elif command == "prices":
        report = cache.load_prices(symbols)
    elif command == "indexes":
        report = cache.load_indexes(symbols)
    elif command == "series":
        report = cache.load_series(symbols)
    else:
        quotes = cache.last_prices(symbols, live=True)
        print(pd.DataFrame([q.values() for q in quotes]).to_string(index=False))
        return
    print(f"Done: {report}")


if __name__ == '__main__':
    main()
