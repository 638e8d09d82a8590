"""
Tests for the weekly matching scheduler object
"""

from datetime import datetime, timedelta

import pytest

from models import Commission, SettlementRun, SettlementTrigger
from services.scheduler import BinaryMatchingScheduler, SettlementInProgress, WEEKLY_MATCHING_JOB_ID


@pytest.fixture
def scheduler(app):
    return app.extensions['binary_scheduler']


def test_scheduler_is_owned_by_the_app(app, scheduler):
    assert isinstance(scheduler, BinaryMatchingScheduler)
    assert scheduler.app is app
    # Never started under testing
    assert scheduler.running is False
    assert scheduler.get_status()['message'] == 'Scheduler not started'


def test_start_and_stop(scheduler):
    scheduler.start()
    try:
        status = scheduler.get_status()
        assert status['running'] is True
        assert status['schedule'] == 'Every Fri at 23:59 UTC'

        next_run = scheduler._scheduler.get_job(WEEKLY_MATCHING_JOB_ID).next_run_time
        assert next_run.weekday() == 4
        assert (next_run.hour, next_run.minute) == (23, 59)
    finally:
        scheduler.stop()

    assert scheduler.running is False


def test_restart_keeps_a_single_job(scheduler):
    scheduler.start()
    scheduler.start()
    try:
        assert len(scheduler._scheduler.get_jobs()) == 1
    finally:
        scheduler.stop()


def test_run_now_settles(scheduler, make_member):
    now = datetime(2026, 10, 16, 23, 59)
    member = make_member(
        binary_activated=True, left_leg_pv=100, right_leg_pv=100,
        total_active_affiliates=3, last_activity_date=now - timedelta(days=2)
    )

    result = scheduler.run_now(now=now)

    assert result['summary']['matched_count'] == 1
    assert Commission.query.filter_by(user_id=member.user_id).count() == 1
    assert SettlementRun.query.one().trigger == SettlementTrigger.MANUAL


def test_only_one_settlement_at_a_time(scheduler):
    scheduler._run_lock.acquire()
    try:
        with pytest.raises(SettlementInProgress):
            scheduler.run_now()
        assert scheduler.get_status()['settlement_in_progress'] is True
    finally:
        scheduler._run_lock.release()


def test_scheduled_run_records_trigger(scheduler):
    scheduler._scheduled_run()

    run = SettlementRun.query.one()
    assert run.trigger == SettlementTrigger.SCHEDULED


def test_stopped_scheduler_can_still_run_manually(scheduler):
    scheduler.start()
    scheduler.stop()

    result = scheduler.run_now()
    assert result['summary']['status'] == 'completed'
