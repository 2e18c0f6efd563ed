"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from reminder_scheduler.domain.errors import (
    CapacityExceededError,
    EngineError,
    InvalidDefinitionError,
    NothingToScheduleError,
    PermissionDeniedError,
    PlatformError,
    RegionCapacityError,
    ReminderDataError,
    ReminderNotFoundError,
    ReminderSchedulerError,
    StoreError,
    StoreNotAuthenticatedError,
    StoreUnavailableError,
    UpdateRejectedError,
)
from reminder_scheduler.domain.models import (
    ActivationOutcome,
    ActivationStatus,
    Custom,
    Daily,
    EngineKind,
    FiredEvent,
    FireSource,
    GeoRegion,
    LocationKind,
    Once,
    PermissionStatus,
    RecurrenceRule,
    RegionEventKind,
    RegionState,
    RehydrationReport,
    Reminder,
    ReminderDefinition,
    ScheduledTask,
    ScheduleResult,
    TimeOfDay,
    TriggerType,
    Weekly,
)
from reminder_scheduler.domain.ports import (
    PermissionProvider,
    RegionMonitor,
    ReminderStore,
    TimeTriggerPrimitive,
)

__all__ = [
    # Models
    "TriggerType",
    "TimeOfDay",
    "Once",
    "Daily",
    "Weekly",
    "Custom",
    "RecurrenceRule",
    "LocationKind",
    "GeoRegion",
    "ReminderDefinition",
    "Reminder",
    "EngineKind",
    "RegionState",
    "RegionEventKind",
    "ScheduledTask",
    "FireSource",
    "FiredEvent",
    "PermissionStatus",
    "ActivationStatus",
    "ActivationOutcome",
    "ScheduleResult",
    "RehydrationReport",
    # Errors
    "ReminderSchedulerError",
    "InvalidDefinitionError",
    "ReminderNotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "StoreNotAuthenticatedError",
    "ReminderDataError",
    "EngineError",
    "PermissionDeniedError",
    "CapacityExceededError",
    "NothingToScheduleError",
    "PlatformError",
    "RegionCapacityError",
    "UpdateRejectedError",
    # Ports
    "ReminderStore",
    "TimeTriggerPrimitive",
    "RegionMonitor",
    "PermissionProvider",
]
