from data_cache.config import Settings
from data_cache.scheduler import UpdateScheduler


class BrokenCache:
    settings = Settings()

    def __init__(self):
        self.calls = []

    def load_prices(self, symbols):
        self.calls.append(("prices", symbols))
        raise RuntimeError("vendor down")

    def load_series(self, symbols):
        self.calls.append(("series", symbols))
        raise RuntimeError("vendor down")


def test_jobs_are_registered_and_swallow_failures():
    cache = BrokenCache()
    sched = UpdateScheduler(cache)
    try:
        sched.start_daily_price_update(["AAA"])
        sched.start_monthly_series_update(["AAA", "BBB"])

        price_job = sched.scheduler.get_job("daily_price_update")
        series_job = sched.scheduler.get_job("monthly_series_update")
        assert price_job is not None
        assert series_job is not None

        price_job.func()
        series_job.func()
        assert cache.calls == [("prices", ["AAA"]), ("series", ["AAA", "BBB"])]
    finally:
        sched.shutdown()
