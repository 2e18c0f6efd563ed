"""SchedulerTimeTrigger のテスト（実際のイベントループで短い遅延を使う）"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from reminder_scheduler.adapters.scheduler_timer import SchedulerTimeTrigger


def _soon(seconds: float = 0.05) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def trigger():
    trigger = SchedulerTimeTrigger(AsyncIOScheduler(timezone=timezone.utc))
    yield trigger
    trigger.shutdown()


class TestSchedulerTimeTrigger:
    """SchedulerTimeTrigger のテスト"""

    @pytest.mark.asyncio
    async def test_registers_date_job_with_reminder_id(self, trigger):
        fire_at = _soon(60)

        handle = trigger.register("r-1", fire_at, repeats=False)

        assert handle == "r-1"
        job = trigger._scheduler.get_job("r-1")
        assert isinstance(job.trigger, DateTrigger)
        assert job.next_run_time == fire_at

    @pytest.mark.asyncio
    async def test_register_replaces_existing_job(self, trigger):
        trigger.register("r-1", _soon(60), repeats=False)
        later = _soon(120)

        trigger.register("r-1", later, repeats=False)

        assert trigger.pending_count == 1
        assert trigger._scheduler.get_job("r-1").next_run_time == later

    @pytest.mark.asyncio
    async def test_repeats_uses_interval_trigger(self, trigger):
        trigger.register("r-1", _soon(60), repeats=True)

        assert isinstance(trigger._scheduler.get_job("r-1").trigger, IntervalTrigger)

    @pytest.mark.asyncio
    async def test_fires_once(self, trigger):
        delivered = []
        trigger.set_delivery_handler(delivered.append)

        trigger.register("r-1", _soon(), repeats=False)
        await asyncio.sleep(0.3)

        assert delivered == ["r-1"]
        assert trigger.pending_count == 0

    @pytest.mark.asyncio
    async def test_past_time_still_fires(self, trigger):
        delivered = []
        trigger.set_delivery_handler(delivered.append)

        trigger.register("r-1", _soon(-60), repeats=False)
        await asyncio.sleep(0.2)

        assert delivered == ["r-1"]

    @pytest.mark.asyncio
    async def test_cancel(self, trigger):
        delivered = []
        trigger.set_delivery_handler(delivered.append)

        handle = trigger.register("r-1", _soon(0.1), repeats=False)
        trigger.cancel(handle)
        await asyncio.sleep(0.3)

        assert delivered == []
        assert trigger.pending_count == 0

    @pytest.mark.asyncio
    async def test_cancel_after_fire_is_noop(self, trigger):
        trigger.set_delivery_handler(lambda reminder_id: None)
        handle = trigger.register("r-1", _soon(), repeats=False)
        await asyncio.sleep(0.3)

        trigger.cancel(handle)

        assert trigger.pending_count == 0

    @pytest.mark.asyncio
    async def test_handler_can_rearm_same_id(self, trigger):
        """発火コールバック内で同じ ID を再登録できる（再登録したジョブは残る）"""
        next_at = _soon(60)

        def rearm(reminder_id):
            trigger.register(reminder_id, next_at, repeats=False)

        trigger.set_delivery_handler(rearm)
        trigger.register("r-1", _soon(), repeats=False)
        await asyncio.sleep(0.3)

        assert trigger._scheduler.get_job("r-1").next_run_time == next_at

    @pytest.mark.asyncio
    async def test_fire_without_handler_logs_warning(self, trigger, caplog):
        with caplog.at_level(logging.WARNING, logger="reminder_scheduler.adapters.scheduler_timer"):
            trigger.register("r-1", _soon(), repeats=False)
            await asyncio.sleep(0.3)

        assert "Job fired without handler: reminder_id=r-1" in caplog.text
