"""Ports - 外部コラボレーターのインターフェース定義（ABC）

プラットフォームの通知スケジューラ・領域監視・権限・永続化ストアとの契約。
本番では OS バインディング / Firestore、テストではインメモリ実装を注入する。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable

from reminder_scheduler.domain.models import (
    GeoRegion,
    PermissionStatus,
    RegionEventKind,
    Reminder,
)

TimeDeliveryHandler = Callable[[str], None]
RegionDeliveryHandler = Callable[[str, RegionEventKind], None]


class ReminderStore(ABC):
    """リマインダーの永続化（Firestore等）。ネットワーク越しの可能性があるため非同期"""

    @abstractmethod
    async def save(self, reminder: Reminder) -> None:
        """id をキーに upsert（冪等）"""
        pass

    @abstractmethod
    async def delete(self, reminder_id: str) -> None:
        """削除。存在しない場合は何もしない"""
        pass

    @abstractmethod
    async def load_all(self, owner_id: str) -> list[Reminder]:
        """ユーザーの全リマインダーを取得（起動時の rehydrate 用）"""
        pass

    @abstractmethod
    async def get(self, reminder_id: str) -> Reminder | None:
        """1件取得。存在しない場合は None"""
        pass


class TimeTriggerPrimitive(ABC):
    """プラットフォームの時刻トリガー（ローカル通知スケジューラ等）"""

    @abstractmethod
    def register(self, reminder_id: str, fire_at: datetime, repeats: bool) -> Any:
        """fire_at に発火する登録を作成。キャンセル用のハンドルを返す"""
        pass

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """登録を取り消す"""
        pass

    @abstractmethod
    def set_delivery_handler(self, handler: TimeDeliveryHandler) -> None:
        """発火時に handler(reminder_id) を呼ぶ"""
        pass


class RegionMonitor(ABC):
    """プラットフォームの領域監視（ジオフェンス）"""

    @abstractmethod
    def register(self, reminder_id: str, region: GeoRegion) -> Any:
        """
        領域の監視を開始。ハンドルを返す

        Raises:
            RegionCapacityError: プラットフォームの監視上限に達している場合
        """
        pass

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """監視を停止"""
        pass

    @abstractmethod
    def set_delivery_handler(self, handler: RegionDeliveryHandler) -> None:
        """出入り時に handler(reminder_id, kind) を呼ぶ"""
        pass

    @abstractmethod
    def monitored_region_ids(self) -> set[str]:
        """現在プラットフォームが監視している reminder_id の集合"""
        pass

    @abstractmethod
    def handle_for(self, reminder_id: str) -> Any | None:
        """reminder_id の監視ハンドル（前回プロセスが残した登録も含む）。なければ None"""
        pass


class PermissionProvider(ABC):
    """OS 権限の参照。コアは読み取りのみで、権限 UI は実装しない"""

    @abstractmethod
    def notification_permission(self) -> PermissionStatus:
        pass

    @abstractmethod
    def location_permission(self) -> PermissionStatus:
        pass

    @abstractmethod
    async def request_notification_permission(self) -> PermissionStatus:
        """権限リクエスト（アプリシェルが呼ぶ副作用付きの操作）"""
        pass

    @abstractmethod
    async def request_location_permission(self) -> PermissionStatus:
        """権限リクエスト（アプリシェルが呼ぶ副作用付きの操作）"""
        pass
