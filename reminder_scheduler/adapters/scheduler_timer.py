"""APScheduler Time Trigger Adapter

TimeTriggerPrimitive の実装。AsyncIOScheduler の DateTrigger ジョブとして
壁時計の時刻に発火させる（サーバープロセス・CLI 用）。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from reminder_scheduler.domain.ports import TimeDeliveryHandler, TimeTriggerPrimitive

logger = logging.getLogger(__name__)


class SchedulerTimeTrigger(TimeTriggerPrimitive):
    """
    AsyncIOScheduler を使った時刻トリガー。

    ジョブ ID は reminder_id（replace_existing で同じ ID の登録を置き換える）。
    repeats=True の場合は登録時点から fire_at までの間隔で再発火する。
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        """
        Args:
            scheduler: 使用するスケジューラ（省略時は新規に生成し、最初の登録時に起動する）
        """
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._handler: TimeDeliveryHandler | None = None

    def register(self, reminder_id: str, fire_at: datetime, repeats: bool) -> str:
        if not self._scheduler.running:
            self._scheduler.start()

        interval = fire_at - datetime.now(timezone.utc)
        if repeats and interval.total_seconds() > 0:
            trigger = IntervalTrigger(seconds=interval.total_seconds(), start_date=fire_at)
        else:
            trigger = DateTrigger(run_date=fire_at)

        job = self._scheduler.add_job(
            self._deliver,
            trigger=trigger,
            args=[reminder_id],
            id=reminder_id,
            name=f"reminder:{reminder_id}",
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Job added: reminder_id=%s, run_at=%s", reminder_id, fire_at.isoformat())
        return job.id

    def cancel(self, handle: Any) -> None:
        try:
            self._scheduler.remove_job(handle)
        except JobLookupError:
            # 発火済みの DateTrigger ジョブは既に消えている
            logger.debug("Job already gone: job_id=%s", handle)

    def set_delivery_handler(self, handler: TimeDeliveryHandler) -> None:
        self._handler = handler

    @property
    def pending_count(self) -> int:
        return len(self._scheduler.get_jobs())

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def _deliver(self, reminder_id: str) -> None:
        # イベントループ上で実行し、ハンドラは await せずに同期的に呼ぶ
        if self._handler is None:
            logger.warning("Job fired without handler: reminder_id=%s", reminder_id)
            return
        self._handler(reminder_id)
