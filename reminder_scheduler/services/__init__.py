"""Services layer - スケジューリングのロジック"""

from reminder_scheduler.services.coordinator import SchedulerCoordinator
from reminder_scheduler.services.event_stream import FiredEventStream
from reminder_scheduler.services.geofence_engine import GeofenceTriggerEngine
from reminder_scheduler.services.recurrence import next_fire_after
from reminder_scheduler.services.time_engine import TimeTriggerEngine

__all__ = [
    "SchedulerCoordinator",
    "TimeTriggerEngine",
    "GeofenceTriggerEngine",
    "FiredEventStream",
    "next_fire_after",
]
