"""Time Trigger Engine - 壁時計トリガーの管理

reminder_id ごとに最大1件の登録を保持し、繰り返しルールは発火のたびに
次回分を登録し直す（プラットフォーム側の repeats には頼らない）。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Callable

from reminder_scheduler.domain.errors import (
    NothingToScheduleError,
    PermissionDeniedError,
    PlatformError,
)
from reminder_scheduler.domain.models import (
    Custom,
    EngineKind,
    FiredEvent,
    FireSource,
    PermissionStatus,
    RecurrenceRule,
    Reminder,
    ScheduledTask,
)
from reminder_scheduler.domain.ports import PermissionProvider, TimeTriggerPrimitive
from reminder_scheduler.services.keyed_lock import KeyedLock
from reminder_scheduler.services.recurrence import next_fire_after

logger = logging.getLogger(__name__)

# 計算中に時刻が進んで過去になった場合の再計算回数
_MAX_RECOMPUTE = 3

EngineListener = Callable[[FiredEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeTriggerEngine:
    """
    時刻ベースの発火を管理するエンジン。

    - activate: 次回発火時刻を計算してプラットフォームに登録（既存登録は置き換え）
    - deactivate: 登録を取り消す
    - 発火時: 繰り返しルールを同期的に再登録してから listener に通知
    """

    def __init__(
        self,
        primitive: TimeTriggerPrimitive,
        permissions: PermissionProvider,
        tz: tzinfo,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            primitive: プラットフォームの時刻トリガー
            permissions: 通知権限の参照先
            tz: Daily / Weekly の時刻を解釈するタイムゾーン
            clock: 現在時刻（aware datetime）を返す関数
        """
        self._primitive = primitive
        self._permissions = permissions
        self._tz = tz
        self._clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self._locks = KeyedLock()
        self._listener: EngineListener | None = None
        self._primitive.set_delivery_handler(self._on_delivery)

    def set_listener(self, listener: EngineListener) -> None:
        self._listener = listener

    async def activate(self, reminder: Reminder) -> ScheduledTask:
        """
        リマインダーの次回発火を登録する。

        Raises:
            PermissionDeniedError: 通知権限がない
            NothingToScheduleError: 発火時刻がない（過去の Once 等）。既存登録は取り消される
            PlatformError: プラットフォームへの登録に失敗
        """
        if reminder.schedule is None:
            raise NothingToScheduleError(f"Reminder {reminder.id} has no schedule")

        async with self._locks.hold(reminder.id):
            if self._permissions.notification_permission() is not PermissionStatus.GRANTED:
                raise PermissionDeniedError("notification")

            fire_at = self._compute_next(reminder.schedule)
            if fire_at is None:
                self._cancel_task(reminder.id)
                raise NothingToScheduleError(
                    f"Reminder {reminder.id} has no upcoming fire time"
                )

            # 置き換え: 先に取り消してから登録（二重登録しない）
            self._cancel_task(reminder.id)
            task = self._register(reminder.id, reminder.schedule, fire_at)
            logger.info(
                "Scheduled time trigger: reminder_id=%s, fire_at=%s",
                reminder.id,
                fire_at.isoformat(),
                extra={"reminder_id": reminder.id},
            )
            return task

    async def deactivate(self, reminder_id: str) -> ScheduledTask | None:
        """登録を取り消す。登録がなければ何もしない"""
        async with self._locks.hold(reminder_id):
            return self._cancel_task(reminder_id)

    async def shutdown(self) -> None:
        """保持しているすべての登録を取り消す"""
        for reminder_id in list(self._tasks):
            await self.deactivate(reminder_id)
        logger.info("Time trigger engine shut down")

    def task_for(self, reminder_id: str) -> ScheduledTask | None:
        return self._tasks.get(reminder_id)

    @property
    def active_ids(self) -> set[str]:
        return set(self._tasks)

    # ── internal ─────────────────────────────────────────────────────────────

    def _compute_next(
        self, rule: RecurrenceRule, not_before: datetime | None = None
    ) -> datetime | None:
        now = self._clock()
        if not_before is not None and not_before > now:
            now = not_before
        for _ in range(_MAX_RECOMPUTE):
            fire_at = next_fire_after(rule, now, self._tz)
            if fire_at is None:
                return None
            # 計算中に時刻が進んで過去になっていたら捨てて次を求める
            current = self._clock()
            if fire_at > current:
                return fire_at
            now = current
        return None

    def _register(
        self, reminder_id: str, rule: RecurrenceRule, fire_at: datetime
    ) -> ScheduledTask:
        try:
            handle = self._primitive.register(reminder_id, fire_at, repeats=False)
        except Exception as e:
            raise PlatformError(f"Failed to register time trigger: {e}") from e
        task = ScheduledTask(
            reminder_id=reminder_id,
            engine=EngineKind.TIME,
            handle=handle,
            fire_at=fire_at,
            rule=rule,
        )
        self._tasks[reminder_id] = task
        return task

    def _cancel_task(self, reminder_id: str) -> ScheduledTask | None:
        task = self._tasks.pop(reminder_id, None)
        if task is None:
            return None
        try:
            self._primitive.cancel(task.handle)
        except Exception:
            logger.exception("Failed to cancel time trigger: reminder_id=%s", reminder_id)
        logger.info("Cancelled time trigger: reminder_id=%s", reminder_id)
        return task

    def _on_delivery(self, reminder_id: str) -> None:
        """プラットフォームからの発火コールバック"""
        task = self._tasks.get(reminder_id)
        if task is None:
            logger.debug("Dropping stale time delivery: reminder_id=%s", reminder_id)
            return

        fired_at = self._clock()

        # 再登録は通知より先に、同期的に行う
        if task.rule is not None and task.rule.repeats:
            # 壁時計より早く届いても、発火済みの回は再登録しない
            not_before = None if isinstance(task.rule, Custom) else task.fire_at
            next_at = self._compute_next(task.rule, not_before)
            self._tasks.pop(reminder_id, None)
            if next_at is not None:
                try:
                    self._register(reminder_id, task.rule, next_at)
                    logger.debug(
                        "Re-armed time trigger: reminder_id=%s, fire_at=%s",
                        reminder_id,
                        next_at.isoformat(),
                    )
                except PlatformError:
                    logger.exception("Failed to re-arm reminder: reminder_id=%s", reminder_id)
        else:
            self._tasks.pop(reminder_id, None)

        if self._listener is not None:
            self._listener(
                FiredEvent(reminder_id=reminder_id, fired_at=fired_at, source=FireSource.TIME)
            )
