"""Factory - 依存性注入の組み立て

ストア・プラットフォームのプリミティブ・エンジンを組み立て、SchedulerCoordinator を生成する。
プラットフォームのバインディングはアプリシェルから注入し、省略時はプロセス内の実装を使う。
"""

from __future__ import annotations

import logging

from google.cloud import firestore

from reminder_scheduler.adapters.scheduler_timer import SchedulerTimeTrigger
from reminder_scheduler.adapters.firestore_store import FirestoreReminderStore
from reminder_scheduler.adapters.in_memory import InMemoryRegionMonitor, StaticPermissionProvider
from reminder_scheduler.config import AppConfig
from reminder_scheduler.domain.ports import (
    PermissionProvider,
    RegionMonitor,
    ReminderStore,
    TimeTriggerPrimitive,
)
from reminder_scheduler.services.coordinator import SchedulerCoordinator
from reminder_scheduler.services.geofence_engine import GeofenceTriggerEngine
from reminder_scheduler.services.time_engine import TimeTriggerEngine

logger = logging.getLogger(__name__)


def create_coordinator(
    config: AppConfig | None = None,
    store: ReminderStore | None = None,
    time_primitive: TimeTriggerPrimitive | None = None,
    region_monitor: RegionMonitor | None = None,
    permissions: PermissionProvider | None = None,
) -> SchedulerCoordinator:
    """
    SchedulerCoordinator を生成（全依存を組み立て）。

    Args:
        config: アプリケーション設定（Noneの場合は環境変数から読み込み）
        store: リマインダーストア（省略時は Firestore）
        time_primitive: 時刻トリガー（省略時は APScheduler）
        region_monitor: 領域監視（省略時はプロセス内の監視。OS の出入りイベントは届かない）
        permissions: 権限プロバイダ（省略時は常に許可）

    Returns:
        SchedulerCoordinator: 利用可能なコーディネータ

    Raises:
        ValueError: 必須設定が不足している場合
    """
    if config is None:
        config = AppConfig.from_env()

    logger.info(
        "Creating coordinator: project_id=%s, timezone=%s, max_regions=%d",
        config.project_id,
        config.timezone,
        config.max_monitored_regions,
    )

    if store is None:
        store = FirestoreReminderStore(
            firestore.Client(project=config.project_id), collection=config.collection
        )

    if time_primitive is None:
        time_primitive = SchedulerTimeTrigger()

    if region_monitor is None:
        logger.warning("No region monitor binding given, location events will not be delivered")
        region_monitor = InMemoryRegionMonitor(max_regions=config.max_monitored_regions)

    if permissions is None:
        permissions = StaticPermissionProvider()

    time_engine = TimeTriggerEngine(
        primitive=time_primitive,
        permissions=permissions,
        tz=config.tz,
    )
    geofence_engine = GeofenceTriggerEngine(
        monitor=region_monitor,
        permissions=permissions,
        max_regions=config.max_monitored_regions,
    )

    coordinator = SchedulerCoordinator(
        store=store,
        time_engine=time_engine,
        geofence_engine=geofence_engine,
        max_radius_meters=config.max_region_radius_meters,
        store_retry_attempts=config.store_retry_attempts,
        store_retry_base_delay=config.store_retry_base_delay,
    )

    logger.info("Coordinator created successfully")
    return coordinator
