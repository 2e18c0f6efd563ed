"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Union

from reminder_scheduler.domain.errors import InvalidDefinitionError


class TriggerType(Enum):
    """リマインダーの発火条件の種類（作成後は変更不可）"""

    TIME_BASED = "timeBased"
    LOCATION_BASED = "locationBased"
    HYBRID = "hybrid"

    @property
    def uses_time(self) -> bool:
        return self in (TriggerType.TIME_BASED, TriggerType.HYBRID)

    @property
    def uses_location(self) -> bool:
        return self in (TriggerType.LOCATION_BASED, TriggerType.HYBRID)


@dataclass(frozen=True)
class TimeOfDay:
    """時刻（ローカル時刻の時・分）"""

    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise InvalidDefinitionError(f"hour must be 0-23 (got {self.hour})")
        if not 0 <= self.minute <= 59:
            raise InvalidDefinitionError(f"minute must be 0-59 (got {self.minute})")


# ─── RecurrenceRule（タグ付きユニオン） ─────────────────────────────────────────


@dataclass(frozen=True)
class Once:
    """指定日時に1回だけ発火"""

    fire_at: datetime

    kind = "once"
    repeats = False

    def __post_init__(self) -> None:
        if self.fire_at.tzinfo is None or self.fire_at.utcoffset() is None:
            raise InvalidDefinitionError("Once.fire_at must be timezone-aware")


@dataclass(frozen=True)
class Daily:
    """毎日 time_of_day に発火"""

    time_of_day: TimeOfDay

    kind = "daily"
    repeats = True


@dataclass(frozen=True)
class Weekly:
    """指定曜日の time_of_day に発火（曜日: 1=日曜 ... 7=土曜）"""

    time_of_day: TimeOfDay
    weekdays: frozenset[int]

    kind = "weekly"
    repeats = True

    def __post_init__(self) -> None:
        days = frozenset(self.weekdays)
        if not days:
            raise InvalidDefinitionError("Weekly.weekdays must not be empty")
        invalid = sorted(d for d in days if not 1 <= d <= 7)
        if invalid:
            raise InvalidDefinitionError(
                f"Weekly.weekdays must be in 1..7 (got {invalid})"
            )
        object.__setattr__(self, "weekdays", days)


@dataclass(frozen=True)
class Custom:
    """前回の発火から interval ごとに再発火"""

    interval: timedelta

    kind = "custom"
    repeats = True

    def __post_init__(self) -> None:
        if self.interval < timedelta(seconds=1):
            raise InvalidDefinitionError(
                f"Custom.interval must be at least 1 second (got {self.interval})"
            )


RecurrenceRule = Union[Once, Daily, Weekly, Custom]


# ─── GeoRegion ────────────────────────────────────────────────────────────────


class LocationKind(Enum):
    """監視地点の種類"""

    CHURCH = "church"
    HOME = "home"
    CUSTOM = "custom"


@dataclass(frozen=True)
class GeoRegion:
    """中心座標 + 半径の円形ジオフェンス"""

    latitude: float
    longitude: float
    radius_meters: float
    notify_on_entry: bool = True
    notify_on_exit: bool = False
    name: str = ""
    kind: LocationKind = LocationKind.CUSTOM

    def __post_init__(self) -> None:
        violations = []
        if not -90.0 <= self.latitude <= 90.0:
            violations.append(f"latitude must be -90..90 (got {self.latitude})")
        if not -180.0 <= self.longitude <= 180.0:
            violations.append(f"longitude must be -180..180 (got {self.longitude})")
        if not self.radius_meters > 0:
            violations.append(f"radius_meters must be positive (got {self.radius_meters})")
        if not (self.notify_on_entry or self.notify_on_exit):
            violations.append("at least one of notify_on_entry / notify_on_exit must be true")
        if violations:
            raise InvalidDefinitionError(violations)


# ─── Reminder ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ReminderDefinition:
    """create / update の入力。検証は Coordinator が行う"""

    owner_id: str
    title: str
    trigger_type: TriggerType
    schedule: RecurrenceRule | None = None
    location: GeoRegion | None = None
    enabled: bool = True


@dataclass(frozen=True)
class Reminder:
    """リマインダー（集約ルート）"""

    id: str
    owner_id: str
    title: str
    trigger_type: TriggerType
    schedule: RecurrenceRule | None
    location: GeoRegion | None
    enabled: bool
    created_at: datetime

    def with_enabled(self, enabled: bool) -> Reminder:
        return replace(self, enabled=enabled)


# ─── エンジン内部の状態 ────────────────────────────────────────────────────────


class EngineKind(Enum):
    """トリガーエンジンの種類"""

    TIME = "time"
    LOCATION = "location"


class RegionState(Enum):
    """ジオフェンス1件の状態遷移"""

    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    ENTERED = "entered"
    EXITED = "exited"


class RegionEventKind(Enum):
    """プラットフォームから届く領域イベント"""

    ENTERED = "entered"
    EXITED = "exited"


@dataclass
class ScheduledTask:
    """エンジンが保持するライブハンドル（永続化しない）"""

    reminder_id: str
    engine: EngineKind
    handle: Any
    fire_at: datetime | None = None  # TIME のみ
    rule: RecurrenceRule | None = None  # TIME のみ
    region: GeoRegion | None = None  # LOCATION のみ
    region_state: RegionState | None = None  # LOCATION のみ


# ─── 発火イベント ──────────────────────────────────────────────────────────────


class FireSource(Enum):
    """発火の契機"""

    TIME = "time"
    LOCATION_ENTRY = "locationEntry"
    LOCATION_EXIT = "locationExit"


@dataclass(frozen=True)
class FiredEvent:
    """fired ストリームに流れるドメインイベント"""

    reminder_id: str
    fired_at: datetime
    source: FireSource


class PermissionStatus(Enum):
    """OS 権限の状態"""

    GRANTED = "granted"
    DENIED = "denied"
    NOT_DETERMINED = "notDetermined"


# ─── 結果 ─────────────────────────────────────────────────────────────────────


class ActivationStatus(Enum):
    """エンジン1つ分のアクティベーション結果"""

    ACTIVE = "active"
    NOTHING_TO_SCHEDULE = "nothingToSchedule"
    FAILED = "failed"
    SKIPPED = "skipped"  # 無効化されたリマインダー


@dataclass(frozen=True)
class ActivationOutcome:
    """エンジン1つ分の結果（error は FAILED / NOTHING_TO_SCHEDULE の理由）"""

    engine: EngineKind
    status: ActivationStatus
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is not ActivationStatus.FAILED


@dataclass(frozen=True)
class ScheduleResult:
    """create / update / toggle の結果。Hybrid の部分成功もエンジン別に保持する"""

    reminder: Reminder
    outcomes: dict[EngineKind, ActivationOutcome] = field(default_factory=dict)

    @property
    def failures(self) -> list[ActivationOutcome]:
        return [o for o in self.outcomes.values() if not o.ok]

    @property
    def is_partial(self) -> bool:
        """少なくとも1つ成功し、少なくとも1つ失敗した"""
        return bool(self.failures) and any(o.ok for o in self.outcomes.values())

    @property
    def is_fully_active(self) -> bool:
        return bool(self.outcomes) and all(
            o.status is ActivationStatus.ACTIVE for o in self.outcomes.values()
        )


@dataclass(frozen=True)
class RehydrationReport:
    """rehydrate の結果サマリー"""

    owner_id: str
    results: dict[str, ScheduleResult] = field(default_factory=dict)
    skipped_disabled: list[str] = field(default_factory=list)

    @property
    def reactivated(self) -> list[str]:
        return [rid for rid, r in self.results.items() if not r.failures]

    @property
    def failures(self) -> dict[str, list[ActivationOutcome]]:
        return {rid: r.failures for rid, r in self.results.items() if r.failures}
