"""
Scheduler Service for Binary Network Backend
Runs the weekly binary matching on a cron schedule owned by the application
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import has_app_context
import threading

from models import SettlementTrigger
from services.settlement import run_settlement

WEEKLY_MATCHING_JOB_ID = 'weekly_binary_matching'


class SettlementInProgress(Exception):
    """Raised when a settlement is requested while another one runs"""


class BinaryMatchingScheduler:
    """Owns the weekly matching job: start, stop, status and manual runs"""

    def __init__(self, app=None):
        self.app = None
        self._scheduler = None
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        app.extensions['binary_scheduler'] = self

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    def _build_trigger(self):
        config = self.app.config
        return CronTrigger(
            day_of_week=config['BINARY_MATCHING_DAY_OF_WEEK'],
            hour=config['BINARY_MATCHING_HOUR'],
            minute=config['BINARY_MATCHING_MINUTE'],
            timezone=config['SCHEDULER_TIMEZONE']
        )

    def start(self):
        """Start the weekly binary matching scheduler"""
        if self.running:
            self.stop()

        self._cancel_event.clear()
        self._scheduler = BackgroundScheduler(timezone=self.app.config['SCHEDULER_TIMEZONE'])
        self._scheduler.add_job(
            self._scheduled_run,
            trigger=self._build_trigger(),
            id=WEEKLY_MATCHING_JOB_ID,
            name='Weekly binary matching',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self._scheduler.start()

        self.app.logger.info(f"Binary matching scheduler started: {self.describe_schedule()}")

    def stop(self):
        """Stop the scheduler; a running settlement ends after its current member"""
        self._cancel_event.set()
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self.app.logger.info("Binary matching scheduler stopped")

    def describe_schedule(self):
        config = self.app.config
        return (
            f"Every {config['BINARY_MATCHING_DAY_OF_WEEK'].capitalize()} at "
            f"{config['BINARY_MATCHING_HOUR']:02d}:{config['BINARY_MATCHING_MINUTE']:02d} "
            f"{config['SCHEDULER_TIMEZONE']}"
        )

    def get_status(self):
        """Get scheduler status"""
        if not self.running:
            return {
                'running': False,
                'settlement_in_progress': self._run_lock.locked(),
                'message': 'Scheduler not started'
            }

        job = self._scheduler.get_job(WEEKLY_MATCHING_JOB_ID)
        next_run = job.next_run_time if job else None

        return {
            'running': True,
            'settlement_in_progress': self._run_lock.locked(),
            'next_execution': next_run.isoformat() if next_run else None,
            'schedule': self.describe_schedule(),
            'message': 'Scheduler active'
        }

    def run_now(self, now=None, trigger=SettlementTrigger.MANUAL):
        """Run the settlement immediately in the calling thread"""
        if not self._run_lock.acquire(blocking=False):
            raise SettlementInProgress('A binary settlement is already running')

        try:
            self._cancel_event.clear()
            if has_app_context():
                return run_settlement(now=now, trigger=trigger, cancel_event=self._cancel_event)
            with self.app.app_context():
                return run_settlement(now=now, trigger=trigger, cancel_event=self._cancel_event)
        finally:
            self._run_lock.release()

    def _scheduled_run(self):
        app = self.app
        app.logger.info("=" * 60)
        app.logger.info("WEEKLY BINARY MATCHING")

        try:
            result = self.run_now(trigger=SettlementTrigger.SCHEDULED)
            summary = result['summary']
            app.logger.info(
                f"Weekly matching {summary['status']}: {summary['total_members']} members, "
                f"{summary['total_matched']} PV matched, ${summary['total_income']:.2f} income"
            )
        except SettlementInProgress as e:
            app.logger.warning(f"Weekly matching skipped: {str(e)}")
        except Exception as e:
            app.logger.error(f"Weekly matching failed: {str(e)}", exc_info=True)

        app.logger.info("=" * 60)
