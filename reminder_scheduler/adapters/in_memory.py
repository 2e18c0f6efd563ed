"""インメモリ Adapter

ローカル実行とテスト用の各 Port 実装。
プラットフォームの挙動（発火・領域の出入り）は fire() / simulate() で再現する。
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from reminder_scheduler.adapters.reminder_codec import reminder_from_dict, reminder_to_dict
from reminder_scheduler.domain.errors import RegionCapacityError, StoreNotAuthenticatedError
from reminder_scheduler.domain.models import (
    GeoRegion,
    PermissionStatus,
    RegionEventKind,
    Reminder,
)
from reminder_scheduler.domain.ports import (
    PermissionProvider,
    RegionDeliveryHandler,
    RegionMonitor,
    ReminderStore,
    TimeDeliveryHandler,
    TimeTriggerPrimitive,
)

logger = logging.getLogger(__name__)


class InMemoryReminderStore(ReminderStore):
    """
    dict に Firestore と同じレイアウトのドキュメントを保持する ReminderStore。

    保存時にエンコードし、読み出し時にデコードするので
    コーデックの往復もここで検証される。
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    async def save(self, reminder: Reminder) -> None:
        if not reminder.owner_id:
            raise StoreNotAuthenticatedError("owner_id is required to save a reminder")
        self._documents[reminder.id] = reminder_to_dict(reminder)
        logger.debug("Saved reminder: id=%s", reminder.id)

    async def delete(self, reminder_id: str) -> None:
        self._documents.pop(reminder_id, None)

    async def load_all(self, owner_id: str) -> list[Reminder]:
        if not owner_id:
            raise StoreNotAuthenticatedError("owner_id is required to load reminders")
        return [
            reminder_from_dict(doc)
            for doc in self._documents.values()
            if doc["owner_id"] == owner_id
        ]

    async def get(self, reminder_id: str) -> Reminder | None:
        doc = self._documents.get(reminder_id)
        return reminder_from_dict(doc) if doc is not None else None

    def __len__(self) -> int:
        return len(self._documents)


@dataclass(frozen=True)
class TimeRegistration:
    """InMemoryTimeTrigger の登録1件"""

    handle: str
    reminder_id: str
    fire_at: datetime
    repeats: bool


class InMemoryTimeTrigger(TimeTriggerPrimitive):
    """登録を保持するだけの時刻トリガー。fire() で発火を再現する"""

    def __init__(self) -> None:
        self._registrations: dict[str, TimeRegistration] = {}
        self._handler: TimeDeliveryHandler | None = None
        self._seq = itertools.count(1)

    def register(self, reminder_id: str, fire_at: datetime, repeats: bool) -> str:
        handle = f"time-{next(self._seq)}"
        self._registrations[handle] = TimeRegistration(handle, reminder_id, fire_at, repeats)
        return handle

    def cancel(self, handle: Any) -> None:
        self._registrations.pop(handle, None)

    def set_delivery_handler(self, handler: TimeDeliveryHandler) -> None:
        self._handler = handler

    def registrations_for(self, reminder_id: str) -> list[TimeRegistration]:
        return [r for r in self._registrations.values() if r.reminder_id == reminder_id]

    @property
    def registrations(self) -> list[TimeRegistration]:
        return list(self._registrations.values())

    def fire(self, reminder_id: str) -> None:
        """reminder_id の登録を発火させる。登録がなければ何も届かない"""
        matched = self.registrations_for(reminder_id)
        if not matched:
            return
        for registration in matched:
            if not registration.repeats:
                self._registrations.pop(registration.handle, None)
        if self._handler is not None:
            self._handler(reminder_id)


class InMemoryRegionMonitor(RegionMonitor):
    """
    監視上限つきの領域監視。simulate() で出入りを再現する。

    監視していない reminder_id へのイベントは届かない（プラットフォームの保証）。
    """

    def __init__(self, max_regions: int = 20) -> None:
        self._max_regions = max_regions
        self._regions: dict[str, tuple[str, GeoRegion]] = {}  # handle -> (id, region)
        self._handler: RegionDeliveryHandler | None = None
        self._seq = itertools.count(1)

    def register(self, reminder_id: str, region: GeoRegion) -> str:
        if len(self._regions) >= self._max_regions:
            raise RegionCapacityError(
                f"Platform region limit reached ({self._max_regions})"
            )
        handle = f"region-{next(self._seq)}"
        self._regions[handle] = (reminder_id, region)
        return handle

    def cancel(self, handle: Any) -> None:
        self._regions.pop(handle, None)

    def set_delivery_handler(self, handler: RegionDeliveryHandler) -> None:
        self._handler = handler

    def monitored_region_ids(self) -> set[str]:
        return {rid for rid, _ in self._regions.values()}

    def handle_for(self, reminder_id: str) -> str | None:
        for handle, (rid, _) in self._regions.items():
            if rid == reminder_id:
                return handle
        return None

    @property
    def region_count(self) -> int:
        return len(self._regions)

    def simulate(self, reminder_id: str, kind: RegionEventKind) -> None:
        if reminder_id not in self.monitored_region_ids():
            return
        if self._handler is not None:
            self._handler(reminder_id, kind)


class StaticPermissionProvider(PermissionProvider):
    """固定値を返す権限プロバイダ。request_* は granted_on_request に従って更新する"""

    def __init__(
        self,
        notification: PermissionStatus = PermissionStatus.GRANTED,
        location: PermissionStatus = PermissionStatus.GRANTED,
        granted_on_request: bool = True,
    ) -> None:
        self.notification = notification
        self.location = location
        self._granted_on_request = granted_on_request

    def notification_permission(self) -> PermissionStatus:
        return self.notification

    def location_permission(self) -> PermissionStatus:
        return self.location

    async def request_notification_permission(self) -> PermissionStatus:
        if self.notification is PermissionStatus.NOT_DETERMINED:
            self.notification = self._answer()
        return self.notification

    async def request_location_permission(self) -> PermissionStatus:
        if self.location is PermissionStatus.NOT_DETERMINED:
            self.location = self._answer()
        return self.location

    def _answer(self) -> PermissionStatus:
        return PermissionStatus.GRANTED if self._granted_on_request else PermissionStatus.DENIED
