"""共通テストフィクスチャ

全テストから利用可能なインメモリ Adapter・エンジン・サンプル定義を提供。

- 時刻は FakeClock で固定（advance() で進める）
- プラットフォームの発火は InMemoryTimeTrigger.fire() / InMemoryRegionMonitor.simulate() で再現
"""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from reminder_scheduler.adapters.in_memory import (
    InMemoryRegionMonitor,
    InMemoryReminderStore,
    InMemoryTimeTrigger,
    StaticPermissionProvider,
)
from reminder_scheduler.domain.models import (
    Daily,
    GeoRegion,
    LocationKind,
    ReminderDefinition,
    TimeOfDay,
    TriggerType,
)
from reminder_scheduler.services.coordinator import SchedulerCoordinator
from reminder_scheduler.services.geofence_engine import GeofenceTriggerEngine
from reminder_scheduler.services.time_engine import TimeTriggerEngine

TOKYO = ZoneInfo("Asia/Tokyo")
OWNER = "user-1"
MAX_REGIONS = 3


class FakeClock:
    """テスト用の固定時計"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


# ========== 時計・タイムゾーン ==========


@pytest.fixture
def tz() -> ZoneInfo:
    return TOKYO


@pytest.fixture
def clock() -> FakeClock:
    """2026-04-25 07:30 (Asia/Tokyo) に固定した時計"""
    return FakeClock(datetime(2026, 4, 25, 7, 30, tzinfo=TOKYO))


# ========== Adapter ==========


@pytest.fixture
def store() -> InMemoryReminderStore:
    return InMemoryReminderStore()


@pytest.fixture
def time_trigger() -> InMemoryTimeTrigger:
    return InMemoryTimeTrigger()


@pytest.fixture
def region_monitor() -> InMemoryRegionMonitor:
    # プラットフォーム側の上限はエンジンより大きくしておく（エンジン側で先に弾くことを確認するため）
    return InMemoryRegionMonitor(max_regions=MAX_REGIONS + 10)


@pytest.fixture
def permissions() -> StaticPermissionProvider:
    return StaticPermissionProvider()


# ========== エンジン・コーディネータ ==========


@pytest.fixture
def time_engine(time_trigger, permissions, tz, clock) -> TimeTriggerEngine:
    return TimeTriggerEngine(time_trigger, permissions, tz=tz, clock=clock)


@pytest.fixture
def geofence_engine(region_monitor, permissions, clock) -> GeofenceTriggerEngine:
    return GeofenceTriggerEngine(region_monitor, permissions, max_regions=MAX_REGIONS, clock=clock)


@pytest.fixture
def no_sleep() -> AsyncMock:
    """バックオフ待機を即時に終わらせる sleep"""
    return AsyncMock()


@pytest.fixture
def coordinator(store, time_engine, geofence_engine, clock, no_sleep) -> SchedulerCoordinator:
    return SchedulerCoordinator(
        store=store,
        time_engine=time_engine,
        geofence_engine=geofence_engine,
        max_radius_meters=5000.0,
        store_retry_attempts=3,
        store_retry_base_delay=0.5,
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def fired(coordinator) -> list:
    """coordinator.fired に流れたイベントを溜めるリスト"""
    events: list = []
    coordinator.fired.subscribe(events.append)
    return events


# ========== サンプルデータ ==========


@pytest.fixture
def sample_region() -> GeoRegion:
    """サンプル領域: 教会（到着時のみ通知）"""
    return GeoRegion(
        latitude=35.6812,
        longitude=139.7671,
        radius_meters=100.0,
        notify_on_entry=True,
        notify_on_exit=False,
        name="Grace Church",
        kind=LocationKind.CHURCH,
    )


@pytest.fixture
def daily_definition() -> ReminderDefinition:
    """毎朝 7:00 の時刻リマインダー"""
    return ReminderDefinition(
        owner_id=OWNER,
        title="Morning Prayer",
        trigger_type=TriggerType.TIME_BASED,
        schedule=Daily(TimeOfDay(7, 0)),
    )


@pytest.fixture
def location_definition(sample_region) -> ReminderDefinition:
    """教会到着時の位置リマインダー"""
    return ReminderDefinition(
        owner_id=OWNER,
        title="Prayer Time at Grace Church",
        trigger_type=TriggerType.LOCATION_BASED,
        location=sample_region,
    )


@pytest.fixture
def hybrid_definition(sample_region) -> ReminderDefinition:
    """毎晩 21:00 + 教会到着時のハイブリッドリマインダー"""
    return ReminderDefinition(
        owner_id=OWNER,
        title="Evening Prayer",
        trigger_type=TriggerType.HYBRID,
        schedule=Daily(TimeOfDay(21, 0)),
        location=sample_region,
    )


@pytest.fixture
def make_location_definition():
    """index ごとに座標をずらした位置リマインダー定義を作るファクトリ"""

    def _make(index: int, owner_id: str = OWNER) -> ReminderDefinition:
        return ReminderDefinition(
            owner_id=owner_id,
            title=f"Place {index}",
            trigger_type=TriggerType.LOCATION_BASED,
            location=GeoRegion(
                latitude=35.0 + index * 0.01,
                longitude=139.0,
                radius_meters=100.0,
                name=f"Place {index}",
            ),
        )

    return _make
