"""Reminder ⇔ ドキュメント（dict）の変換

ストアに保存する論理レイアウト:
  {
    "id": "...", "owner_id": "...", "title": "...",
    "trigger_type": "timeBased" | "locationBased" | "hybrid",
    "enabled": true,
    "created_at": "2026-04-25T08:30:00+09:00",
    "schedule": {"type": "weekly", "hour": 10, "minute": 0, "weekdays": [1]} | null,
    "location": {"latitude": ..., "longitude": ..., "radius_meters": ...,
                 "notify_on_entry": true, "notify_on_exit": false,
                 "name": "...", "kind": "church"} | null
  }
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from reminder_scheduler.domain.errors import InvalidDefinitionError, ReminderDataError
from reminder_scheduler.domain.models import (
    Custom,
    Daily,
    GeoRegion,
    LocationKind,
    Once,
    RecurrenceRule,
    Reminder,
    ReminderDefinition,
    TimeOfDay,
    TriggerType,
    Weekly,
)
from reminder_scheduler.domain.validation import validate_definition


def _parse_datetime(value: Any) -> datetime:
    # Firestore から Timestamp 型で返ることもある
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def rule_to_dict(rule: RecurrenceRule) -> dict[str, Any]:
    """RecurrenceRule をタグ付き dict に変換"""
    if isinstance(rule, Once):
        return {"type": rule.kind, "fire_at": rule.fire_at.isoformat()}
    if isinstance(rule, Daily):
        return {
            "type": rule.kind,
            "hour": rule.time_of_day.hour,
            "minute": rule.time_of_day.minute,
        }
    if isinstance(rule, Weekly):
        return {
            "type": rule.kind,
            "hour": rule.time_of_day.hour,
            "minute": rule.time_of_day.minute,
            "weekdays": sorted(rule.weekdays),
        }
    if isinstance(rule, Custom):
        return {"type": rule.kind, "interval_seconds": rule.interval.total_seconds()}
    raise TypeError(f"Unsupported recurrence rule: {type(rule).__name__}")


def rule_from_dict(data: dict[str, Any]) -> RecurrenceRule:
    """タグ付き dict を RecurrenceRule に変換"""
    kind = data.get("type")
    if kind == "once":
        return Once(fire_at=_parse_datetime(data["fire_at"]))
    if kind == "daily":
        return Daily(time_of_day=TimeOfDay(int(data["hour"]), int(data["minute"])))
    if kind == "weekly":
        return Weekly(
            time_of_day=TimeOfDay(int(data["hour"]), int(data["minute"])),
            weekdays=frozenset(int(d) for d in data["weekdays"]),
        )
    if kind == "custom":
        return Custom(interval=timedelta(seconds=float(data["interval_seconds"])))
    raise ReminderDataError(f"Unknown schedule type: {kind!r}")


def region_to_dict(region: GeoRegion) -> dict[str, Any]:
    return {
        "latitude": region.latitude,
        "longitude": region.longitude,
        "radius_meters": region.radius_meters,
        "notify_on_entry": region.notify_on_entry,
        "notify_on_exit": region.notify_on_exit,
        "name": region.name,
        "kind": region.kind.value,
    }


def region_from_dict(data: dict[str, Any]) -> GeoRegion:
    return GeoRegion(
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        radius_meters=float(data["radius_meters"]),
        notify_on_entry=bool(data["notify_on_entry"]),
        notify_on_exit=bool(data["notify_on_exit"]),
        # 古いレコードには name / kind がない
        name=data.get("name") or "",
        kind=LocationKind(data.get("kind") or LocationKind.CUSTOM.value),
    )


def reminder_to_dict(reminder: Reminder) -> dict[str, Any]:
    """Reminder をストア用 dict に変換"""
    return {
        "id": reminder.id,
        "owner_id": reminder.owner_id,
        "title": reminder.title,
        "trigger_type": reminder.trigger_type.value,
        "enabled": reminder.enabled,
        "created_at": reminder.created_at.isoformat(),
        "schedule": rule_to_dict(reminder.schedule) if reminder.schedule else None,
        "location": region_to_dict(reminder.location) if reminder.location else None,
    }


def reminder_from_dict(data: dict[str, Any]) -> Reminder:
    """
    ストアの dict を Reminder に変換。

    Raises:
        ReminderDataError: 必須フィールド欠落・型不正・不変条件違反
    """
    try:
        schedule = data.get("schedule")
        location = data.get("location")
        reminder = Reminder(
            id=data["id"],
            owner_id=data["owner_id"],
            title=data["title"],
            trigger_type=TriggerType(data["trigger_type"]),
            schedule=rule_from_dict(schedule) if schedule else None,
            location=region_from_dict(location) if location else None,
            enabled=bool(data["enabled"]),
            created_at=_parse_datetime(data["created_at"]),
        )
    except ReminderDataError:
        raise
    except (KeyError, TypeError, ValueError, InvalidDefinitionError) as e:
        raise ReminderDataError(f"Invalid reminder record {data.get('id')!r}: {e}") from e

    violations = validate_definition(
        ReminderDefinition(
            owner_id=reminder.owner_id,
            title=reminder.title,
            trigger_type=reminder.trigger_type,
            schedule=reminder.schedule,
            location=reminder.location,
        )
    )
    if violations:
        raise ReminderDataError(
            f"Invalid reminder record {reminder.id!r}: {'; '.join(violations)}"
        )
    return reminder
