"""ReminderDefinition の不変条件チェック

違反をすべて列挙して返す（最初の1件で止めない）。
"""

from __future__ import annotations

from reminder_scheduler.domain.models import (
    Custom,
    Daily,
    GeoRegion,
    Once,
    ReminderDefinition,
    TriggerType,
    Weekly,
)

_RULE_TYPES = (Once, Daily, Weekly, Custom)


def validate_definition(
    definition: ReminderDefinition, max_radius_meters: float | None = None
) -> list[str]:
    """
    定義の不変条件を検証する。

    Args:
        definition: 検証対象
        max_radius_meters: プラットフォームの半径上限（None なら無制限）

    Returns:
        違反内容のリスト。空なら有効
    """
    violations: list[str] = []

    if not definition.owner_id:
        violations.append("owner_id must not be empty")
    if not definition.title or not definition.title.strip():
        violations.append("title must not be empty")
    if not isinstance(definition.trigger_type, TriggerType):
        violations.append(f"unknown trigger_type: {definition.trigger_type!r}")
        return violations

    trigger = definition.trigger_type
    schedule = definition.schedule
    location = definition.location

    if trigger.uses_time:
        if schedule is None:
            violations.append(f"{trigger.value} reminder requires a schedule")
        elif not isinstance(schedule, _RULE_TYPES):
            violations.append(f"schedule must be a recurrence rule (got {type(schedule).__name__})")
    elif schedule is not None:
        violations.append(f"{trigger.value} reminder must not have a schedule")

    if trigger.uses_location:
        if location is None:
            violations.append(f"{trigger.value} reminder requires a location")
        elif not isinstance(location, GeoRegion):
            violations.append(f"location must be a GeoRegion (got {type(location).__name__})")
        elif max_radius_meters is not None and location.radius_meters > max_radius_meters:
            violations.append(
                f"radius_meters must not exceed {max_radius_meters} "
                f"(got {location.radius_meters})"
            )
    elif location is not None:
        violations.append(f"{trigger.value} reminder must not have a location")

    return violations
