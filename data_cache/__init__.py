"""
Data cache package for synchronizing vendor market data into a local
SQLite database while staying inside the vendor's rate limits.

Modules:
- config: Settings and per-cache throttle windows (batch size, delay)
- db: DB initialization, transaction scopes, baseline queries and writes
- models: Instrument / series / trade / index records and error placeholders
- batching: Split symbols into batches and pause between them
- feed: Vendor gateways (Alpha Vantage, yfinance) and fetch failures
- reconciliation: Merge live records into the stored baseline
- instrument_cache, index_cache, series_cache, trade_cache: Typed facades
- base: Batched bulk load and read path shared by the feed-backed caches
- service: DataCache facade used by app code to load and read cached data
- scheduler: Optional recurring bulk loads (APScheduler)
"""
