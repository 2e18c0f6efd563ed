"""プリセット - よく使うリマインダー定義のショートカット

朝・夜の祈り、毎週の礼拝、教会・自宅への到着時リマインダー。
"""

from __future__ import annotations

from reminder_scheduler.domain.models import (
    Daily,
    GeoRegion,
    LocationKind,
    ReminderDefinition,
    TimeOfDay,
    TriggerType,
    Weekly,
)

DEFAULT_CHURCH_RADIUS_METERS = 100.0
DEFAULT_HOME_RADIUS_METERS = 50.0


def morning_prayer(owner_id: str, hour: int = 7, minute: int = 0) -> ReminderDefinition:
    """毎朝のリマインダー"""
    return ReminderDefinition(
        owner_id=owner_id,
        title="Morning Prayer",
        trigger_type=TriggerType.TIME_BASED,
        schedule=Daily(TimeOfDay(hour, minute)),
    )


def evening_prayer(owner_id: str, hour: int = 21, minute: int = 0) -> ReminderDefinition:
    """毎晩のリマインダー"""
    return ReminderDefinition(
        owner_id=owner_id,
        title="Evening Prayer",
        trigger_type=TriggerType.TIME_BASED,
        schedule=Daily(TimeOfDay(hour, minute)),
    )


def weekly_church_service(
    owner_id: str, weekday: int, hour: int = 10, minute: int = 0
) -> ReminderDefinition:
    """
    毎週の礼拝リマインダー。

    Args:
        weekday: 曜日（1=日曜 ... 7=土曜）
    """
    return ReminderDefinition(
        owner_id=owner_id,
        title="Church Service Reminder",
        trigger_type=TriggerType.TIME_BASED,
        schedule=Weekly(TimeOfDay(hour, minute), frozenset({weekday})),
    )


def church_location(
    owner_id: str,
    name: str,
    latitude: float,
    longitude: float,
    radius_meters: float = DEFAULT_CHURCH_RADIUS_METERS,
) -> ReminderDefinition:
    """教会に着いたときのリマインダー（到着時のみ通知）"""
    return ReminderDefinition(
        owner_id=owner_id,
        title=f"Prayer Time at {name}",
        trigger_type=TriggerType.LOCATION_BASED,
        location=GeoRegion(
            latitude=latitude,
            longitude=longitude,
            radius_meters=radius_meters,
            notify_on_entry=True,
            notify_on_exit=False,
            name=name,
            kind=LocationKind.CHURCH,
        ),
    )


def home_location(
    owner_id: str,
    latitude: float,
    longitude: float,
    radius_meters: float = DEFAULT_HOME_RADIUS_METERS,
) -> ReminderDefinition:
    """帰宅したときのリマインダー（到着時のみ通知）"""
    return ReminderDefinition(
        owner_id=owner_id,
        title="Home Prayer Time",
        trigger_type=TriggerType.LOCATION_BASED,
        location=GeoRegion(
            latitude=latitude,
            longitude=longitude,
            radius_meters=radius_meters,
            notify_on_entry=True,
            notify_on_exit=False,
            name="Home",
            kind=LocationKind.HOME,
        ),
    )
