"""TimeTriggerEngine のテスト"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from reminder_scheduler.domain.errors import (
    NothingToScheduleError,
    PermissionDeniedError,
    PlatformError,
)
from reminder_scheduler.domain.models import (
    Custom,
    Daily,
    FireSource,
    Once,
    PermissionStatus,
    Reminder,
    TimeOfDay,
    TriggerType,
)
from reminder_scheduler.domain.ports import TimeTriggerPrimitive
from reminder_scheduler.services.time_engine import TimeTriggerEngine

TOKYO = ZoneInfo("Asia/Tokyo")


def _reminder(schedule, reminder_id: str = "r-1") -> Reminder:
    return Reminder(
        id=reminder_id,
        owner_id="user-1",
        title="Prayer",
        trigger_type=TriggerType.TIME_BASED,
        schedule=schedule,
        location=None,
        enabled=True,
        created_at=datetime(2026, 4, 1, tzinfo=TOKYO),
    )


class TestActivate:
    """activate のテスト"""

    @pytest.mark.asyncio
    async def test_registers_next_fire_without_platform_repeat(self, time_engine, time_trigger):
        # Arrange: 07:30 に Daily(07:00)
        reminder = _reminder(Daily(TimeOfDay(7, 0)))

        # Act
        task = await time_engine.activate(reminder)

        # Assert
        assert task.fire_at == datetime(2026, 4, 26, 7, 0, tzinfo=TOKYO)
        [registration] = time_trigger.registrations_for("r-1")
        assert registration.fire_at == task.fire_at
        assert registration.repeats is False
        assert time_engine.task_for("r-1") is task

    @pytest.mark.asyncio
    async def test_permission_denied(self, time_engine, time_trigger, permissions):
        permissions.notification = PermissionStatus.DENIED

        with pytest.raises(PermissionDeniedError) as exc_info:
            await time_engine.activate(_reminder(Daily(TimeOfDay(7))))

        assert exc_info.value.permission == "notification"
        assert time_trigger.registrations == []
        assert time_engine.active_ids == set()

    @pytest.mark.asyncio
    async def test_not_determined_counts_as_denied(self, time_engine, permissions):
        permissions.notification = PermissionStatus.NOT_DETERMINED

        with pytest.raises(PermissionDeniedError):
            await time_engine.activate(_reminder(Daily(TimeOfDay(7))))

    @pytest.mark.asyncio
    async def test_past_once_is_nothing_to_schedule(self, time_engine, time_trigger, clock):
        reminder = _reminder(Once(clock.now - timedelta(minutes=1)))

        with pytest.raises(NothingToScheduleError):
            await time_engine.activate(reminder)

        assert time_trigger.registrations == []

    @pytest.mark.asyncio
    async def test_nothing_to_schedule_cancels_previous_task(
        self, time_engine, time_trigger, clock
    ):
        await time_engine.activate(_reminder(Daily(TimeOfDay(7))))

        with pytest.raises(NothingToScheduleError):
            await time_engine.activate(_reminder(Once(clock.now - timedelta(hours=1))))

        assert time_trigger.registrations == []
        assert time_engine.task_for("r-1") is None

    @pytest.mark.asyncio
    async def test_missing_schedule(self, time_engine):
        with pytest.raises(NothingToScheduleError):
            await time_engine.activate(_reminder(None))

    @pytest.mark.asyncio
    async def test_reactivate_replaces_registration(self, time_engine, time_trigger):
        """同じ ID を再度 activate しても登録は1件のまま"""
        await time_engine.activate(_reminder(Daily(TimeOfDay(7))))
        await time_engine.activate(_reminder(Daily(TimeOfDay(21))))

        [registration] = time_trigger.registrations_for("r-1")
        assert registration.fire_at == datetime(2026, 4, 25, 21, 0, tzinfo=TOKYO)

    @pytest.mark.asyncio
    async def test_platform_failure(self, permissions, clock):
        primitive = MagicMock(spec=TimeTriggerPrimitive)
        primitive.register.side_effect = RuntimeError("scheduler offline")
        engine = TimeTriggerEngine(primitive, permissions, tz=TOKYO, clock=clock)

        with pytest.raises(PlatformError, match="scheduler offline"):
            await engine.activate(_reminder(Daily(TimeOfDay(7))))

        assert engine.task_for("r-1") is None

    @pytest.mark.asyncio
    async def test_recomputes_when_clock_passes_result(self, time_trigger, permissions):
        """計算中に発火時刻を過ぎたら次の発火時刻を求め直す"""
        times = iter(
            [
                datetime(2026, 4, 25, 6, 59, 59, tzinfo=TOKYO),
                datetime(2026, 4, 25, 7, 0, 1, tzinfo=TOKYO),
            ]
        )
        last = datetime(2026, 4, 25, 7, 0, 1, tzinfo=TOKYO)
        engine = TimeTriggerEngine(
            time_trigger, permissions, tz=TOKYO, clock=lambda: next(times, last)
        )

        task = await engine.activate(_reminder(Daily(TimeOfDay(7))))

        assert task.fire_at == datetime(2026, 4, 26, 7, 0, tzinfo=TOKYO)


class TestDelivery:
    """プラットフォームからの発火のテスト"""

    @pytest.mark.asyncio
    async def test_repeating_rule_is_rearmed_before_listener(
        self, time_engine, time_trigger, clock
    ):
        await time_engine.activate(_reminder(Daily(TimeOfDay(7))))
        seen_registrations = []
        events = []

        def listener(event):
            seen_registrations.extend(time_trigger.registrations_for("r-1"))
            events.append(event)

        time_engine.set_listener(listener)
        clock.now = datetime(2026, 4, 26, 7, 0, tzinfo=TOKYO)

        time_trigger.fire("r-1")

        assert len(events) == 1
        assert events[0].source is FireSource.TIME
        assert events[0].fired_at == clock.now
        # listener が呼ばれた時点で翌日分が登録済み
        [next_registration] = seen_registrations
        assert next_registration.fire_at == datetime(2026, 4, 27, 7, 0, tzinfo=TOKYO)
        assert time_engine.task_for("r-1").fire_at == next_registration.fire_at

    @pytest.mark.asyncio
    async def test_early_delivery_rearms_next_occurrence(self, time_engine, time_trigger, clock):
        """壁時計が fire_at より少し手前でも、同じ回を再登録しない"""
        await time_engine.activate(_reminder(Daily(TimeOfDay(7))))
        fire_at = time_engine.task_for("r-1").fire_at
        clock.now = fire_at - timedelta(milliseconds=50)

        time_trigger.fire("r-1")

        [registration] = time_trigger.registrations_for("r-1")
        assert registration.fire_at == datetime(2026, 4, 27, 7, 0, tzinfo=TOKYO)
        assert registration.fire_at > fire_at

    @pytest.mark.asyncio
    async def test_custom_interval_rearms_from_fire_time(self, time_engine, time_trigger, clock):
        await time_engine.activate(_reminder(Custom(timedelta(hours=2))))
        clock.advance(timedelta(hours=2))

        time_trigger.fire("r-1")

        [registration] = time_trigger.registrations_for("r-1")
        assert registration.fire_at == clock.now + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_once_is_forgotten_after_fire(self, time_engine, time_trigger, clock):
        events = []
        time_engine.set_listener(events.append)
        await time_engine.activate(_reminder(Once(clock.now + timedelta(minutes=5))))

        time_trigger.fire("r-1")

        assert len(events) == 1
        assert time_engine.task_for("r-1") is None
        assert time_trigger.registrations == []

    def test_stale_delivery_is_dropped(self, time_engine, time_trigger, clock):
        """エンジンが知らない ID の発火は捨てる"""
        events = []
        time_engine.set_listener(events.append)
        time_trigger.register("ghost", clock.now, repeats=False)

        time_trigger.fire("ghost")

        assert events == []

    @pytest.mark.asyncio
    async def test_failed_rearm_still_notifies(self, permissions, clock):
        primitive = MagicMock(spec=TimeTriggerPrimitive)
        engine = TimeTriggerEngine(primitive, permissions, tz=TOKYO, clock=clock)
        handler = primitive.set_delivery_handler.call_args.args[0]
        events = []
        engine.set_listener(events.append)
        await engine.activate(_reminder(Daily(TimeOfDay(7))))
        primitive.register.side_effect = RuntimeError("offline")

        handler("r-1")

        assert len(events) == 1
        assert engine.task_for("r-1") is None


class TestDeactivate:
    """deactivate / shutdown のテスト"""

    @pytest.mark.asyncio
    async def test_deactivate_cancels(self, time_engine, time_trigger):
        await time_engine.activate(_reminder(Daily(TimeOfDay(7))))

        task = await time_engine.deactivate("r-1")

        assert task.reminder_id == "r-1"
        assert time_trigger.registrations == []

    @pytest.mark.asyncio
    async def test_deactivate_unknown_is_noop(self, time_engine):
        assert await time_engine.deactivate("missing") is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self, time_engine, time_trigger):
        await time_engine.activate(_reminder(Daily(TimeOfDay(7)), "a"))
        await time_engine.activate(_reminder(Daily(TimeOfDay(8)), "b"))

        await time_engine.shutdown()

        assert time_engine.active_ids == set()
        assert time_trigger.registrations == []
