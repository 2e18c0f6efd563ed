"""Recurrence Calculator - 次回発火時刻の計算（副作用なし）

Daily / Weekly はタイムゾーンのカレンダー上で「その日の h:m」を組み立てるため、
固定オフセットではなく DST の切り替えをまたいでも壁時計の時刻が保たれる。
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo

from reminder_scheduler.domain.models import (
    Custom,
    Daily,
    Once,
    RecurrenceRule,
    TimeOfDay,
    Weekly,
)


def weekday_number(day: date) -> int:
    """曜日番号（1=日曜 ... 7=土曜）"""
    return day.isoweekday() % 7 + 1


def _at_local(day: date, time_of_day: TimeOfDay, tz: tzinfo) -> datetime:
    """tz のカレンダー上の day の h:m を正規化した aware datetime で返す"""
    local = datetime.combine(day, time(time_of_day.hour, time_of_day.minute), tzinfo=tz)
    # 存在しない時刻（夏時間の開始）は UTC 経由で実在する時刻に寄せる
    return local.astimezone(timezone.utc).astimezone(tz)


def next_fire_after(
    rule: RecurrenceRule, now: datetime, tz: tzinfo
) -> datetime | None:
    """
    now より厳密に後の次回発火時刻を返す。

    Args:
        rule: 繰り返しルール
        now: 基準時刻（aware datetime）
        tz: Daily / Weekly の h:m を解釈するタイムゾーン

    Returns:
        次回発火時刻（tz の aware datetime）。Once が過去なら None
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    # 同じ tzinfo 同士の比較は壁時計で行われるため、UTC に揃えて比較する
    now = now.astimezone(timezone.utc)

    if isinstance(rule, Once):
        return rule.fire_at.astimezone(tz) if rule.fire_at > now else None

    if isinstance(rule, Custom):
        return (now + rule.interval).astimezone(tz)

    today = now.astimezone(tz).date()

    if isinstance(rule, Daily):
        for offset in range(0, 3):
            candidate = _at_local(today + timedelta(days=offset), rule.time_of_day, tz)
            if candidate > now:
                return candidate
        return None

    if isinstance(rule, Weekly):
        # 今日が対象曜日で時刻を過ぎている場合は 7 日後まで見る
        for offset in range(0, 8):
            day = today + timedelta(days=offset)
            if weekday_number(day) not in rule.weekdays:
                continue
            candidate = _at_local(day, rule.time_of_day, tz)
            if candidate > now:
                return candidate
        return None

    raise TypeError(f"Unsupported recurrence rule: {type(rule).__name__}")
