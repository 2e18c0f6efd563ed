"""Geofence Trigger Engine - 領域監視の管理

プラットフォームの同時監視数には上限がある（数十件程度）。
エンジンは登録数を自前で数え、上限に達したら CapacityExceededError で即座に失敗する。
他のリマインダーを勝手に追い出すことはしない（追い出し方針は呼び出し側の責務）。

状態遷移（1領域）:
  UNREGISTERED → REGISTERED → (ENTERED ⇄ EXITED) → UNREGISTERED
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from reminder_scheduler.domain.errors import (
    CapacityExceededError,
    NothingToScheduleError,
    PermissionDeniedError,
    PlatformError,
    RegionCapacityError,
)
from reminder_scheduler.domain.models import (
    EngineKind,
    FiredEvent,
    FireSource,
    PermissionStatus,
    RegionEventKind,
    RegionState,
    Reminder,
    ScheduledTask,
)
from reminder_scheduler.domain.ports import PermissionProvider, RegionMonitor
from reminder_scheduler.services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

EngineListener = Callable[[FiredEvent], None]

_EVENT_STATE = {
    RegionEventKind.ENTERED: RegionState.ENTERED,
    RegionEventKind.EXITED: RegionState.EXITED,
}
_EVENT_SOURCE = {
    RegionEventKind.ENTERED: FireSource.LOCATION_ENTRY,
    RegionEventKind.EXITED: FireSource.LOCATION_EXIT,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeofenceTriggerEngine:
    """
    ジオフェンスの登録・解除と、出入りイベントのフィルタリングを行うエンジン。
    """

    def __init__(
        self,
        monitor: RegionMonitor,
        permissions: PermissionProvider,
        max_regions: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            monitor: プラットフォームの領域監視
            permissions: 位置情報権限の参照先
            max_regions: 同時に監視できる領域数の上限
            clock: 現在時刻（aware datetime）を返す関数
        """
        if max_regions < 1:
            raise ValueError("max_regions must be at least 1")
        self._monitor = monitor
        self._permissions = permissions
        self._max_regions = max_regions
        self._clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self._locks = KeyedLock()
        self._listener: EngineListener | None = None
        self._monitor.set_delivery_handler(self._on_delivery)

    def set_listener(self, listener: EngineListener) -> None:
        self._listener = listener

    @property
    def max_regions(self) -> int:
        return self._max_regions

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    @property
    def available_slots(self) -> int:
        return self._max_regions - len(self._tasks)

    @property
    def active_ids(self) -> set[str]:
        return set(self._tasks)

    def task_for(self, reminder_id: str) -> ScheduledTask | None:
        return self._tasks.get(reminder_id)

    async def activate(self, reminder: Reminder) -> ScheduledTask:
        """
        リマインダーの領域監視を開始する。同じ ID の既存登録は同じ枠で置き換える。

        Raises:
            PermissionDeniedError: 位置情報権限がない
            CapacityExceededError: 監視上限に到達（内部状態は変更しない）
            PlatformError: プラットフォームへの登録に失敗
        """
        if reminder.location is None:
            raise NothingToScheduleError(f"Reminder {reminder.id} has no location")

        async with self._locks.hold(reminder.id):
            if self._permissions.location_permission() is not PermissionStatus.GRANTED:
                raise PermissionDeniedError("location")

            replacing = reminder.id in self._tasks
            if not replacing and len(self._tasks) >= self._max_regions:
                logger.warning(
                    "Region capacity exceeded: reminder_id=%s, limit=%d",
                    reminder.id,
                    self._max_regions,
                )
                raise CapacityExceededError(self._max_regions)

            self._cancel_task(reminder.id)
            try:
                handle = self._monitor.register(reminder.id, reminder.location)
            except RegionCapacityError as e:
                logger.warning("Platform rejected region: reminder_id=%s, error=%s", reminder.id, e)
                raise CapacityExceededError(self._max_regions) from e
            except Exception as e:
                raise PlatformError(f"Failed to register region: {e}") from e

            task = ScheduledTask(
                reminder_id=reminder.id,
                engine=EngineKind.LOCATION,
                handle=handle,
                region=reminder.location,
                region_state=RegionState.REGISTERED,
            )
            self._tasks[reminder.id] = task
            logger.info(
                "Started monitoring region: reminder_id=%s, name=%s, radius=%.0fm, slots_left=%d",
                reminder.id,
                reminder.location.name,
                reminder.location.radius_meters,
                self.available_slots,
                extra={"reminder_id": reminder.id},
            )
            return task

    async def deactivate(self, reminder_id: str) -> ScheduledTask | None:
        """監視を停止する。登録がなければ何もしない"""
        async with self._locks.hold(reminder_id):
            return self._cancel_task(reminder_id)

    async def shutdown(self) -> None:
        """保持しているすべての領域監視を停止する"""
        for reminder_id in list(self._tasks):
            await self.deactivate(reminder_id)
        logger.info("Geofence engine shut down")

    def reconcile(self) -> list[str]:
        """
        エンジンが管理していないプラットフォーム上の監視を停止する。

        前回プロセスの登録が残っていると枠を消費し続けるため、起動時に呼ぶ。

        Returns:
            停止した reminder_id のリスト
        """
        stale = sorted(self._monitor.monitored_region_ids() - set(self._tasks))
        for reminder_id in stale:
            handle = self._monitor.handle_for(reminder_id)
            if handle is not None:
                self._monitor.cancel(handle)
            logger.info("Stopped stale region: reminder_id=%s", reminder_id)
        return stale

    # ── internal ─────────────────────────────────────────────────────────────

    def _cancel_task(self, reminder_id: str) -> ScheduledTask | None:
        task = self._tasks.pop(reminder_id, None)
        if task is None:
            return None
        try:
            self._monitor.cancel(task.handle)
        except Exception:
            logger.exception("Failed to stop region monitoring: reminder_id=%s", reminder_id)
        task.region_state = RegionState.UNREGISTERED
        logger.info("Stopped monitoring region: reminder_id=%s", reminder_id)
        return task

    def _on_delivery(self, reminder_id: str, kind: RegionEventKind) -> None:
        """プラットフォームからの出入りコールバック"""
        task = self._tasks.get(reminder_id)
        if task is None or task.region is None:
            logger.debug("Dropping region event for unregistered id: reminder_id=%s", reminder_id)
            return

        task.region_state = _EVENT_STATE[kind]

        wanted = (
            task.region.notify_on_entry
            if kind is RegionEventKind.ENTERED
            else task.region.notify_on_exit
        )
        if not wanted:
            logger.debug(
                "Region event filtered: reminder_id=%s, kind=%s", reminder_id, kind.value
            )
            return

        if self._listener is not None:
            self._listener(
                FiredEvent(
                    reminder_id=reminder_id,
                    fired_at=self._clock(),
                    source=_EVENT_SOURCE[kind],
                )
            )
