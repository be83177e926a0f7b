import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .service import DataCache

logger = logging.getLogger(__name__)


class UpdateScheduler:
    def __init__(self, data_cache: DataCache):
        self.data_cache = data_cache
        self.scheduler = BackgroundScheduler(timezone=data_cache.settings.scheduler_timezone)

    def _start(self):
        if not self.scheduler.running:
            self.scheduler.start()

    def start_daily_price_update(self, symbols: list[str]):
        # 16:15 on weekdays (scheduler timezone), after the close.
        trigger = CronTrigger(day_of_week="mon-fri", hour=16, minute=15)

        def job():
            try:
                report = self.data_cache.load_prices(symbols)
                logger.info(f"Auto-updated prices: {report}")
            except Exception as e:
                logger.exception(f"Auto-update of prices failed: {e}")

        self.scheduler.add_job(job, trigger, id="daily_price_update", replace_existing=True)
        self._start()

    def start_monthly_series_update(self, symbols: list[str]):
        """Schedule a series refresh at 2:00 AM on the 1st of each month.

        Series requests are throttled hardest, so this is the job that can
        run for a long time; it runs in the scheduler's worker thread.
        """
        trigger = CronTrigger(day=1, hour=2, minute=0)

        def series_job():
            try:
                report = self.data_cache.load_series(symbols)
                logger.info(f"Monthly series update completed: {report}")
            except Exception as e:
                logger.exception(f"Monthly series update failed: {e}")

        self.scheduler.add_job(
            series_job,
            trigger,
            id="monthly_series_update",
            replace_existing=True
        )
        self._start()

        logger.info(f"Monthly series update scheduled for symbols: {symbols}")

    def shutdown(self):
        self.scheduler.shutdown(wait=False)
