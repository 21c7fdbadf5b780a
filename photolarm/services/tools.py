# photolarm/services/tools.py
"""
Hand-off to the device notification facility. The real scheduler lives
outside this service; it accepts a schedule's alarms and returns opaque
handles. MockAlarmScheduler stands in for it.
"""
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Protocol, Tuple

from loguru import logger

from photolarm.schemas.models import Schedule, ToolResult
from photolarm.utils.clock import parse_iso

Trigger = Tuple[datetime, Dict[str, Any]]


class AlarmScheduler(Protocol):
    def create_alarms(self, schedule: Schedule) -> List[str]: ...

    def cancel_alarms(self, handles: List[str]) -> None: ...


def alarm_triggers(schedule: Schedule) -> List[Trigger]:
    """(trigger time, payload) for every enabled, not completed alarm."""
    return [
        (
            parse_iso(a.datetime),
            {
                "alarm_id": a.id,
                "schedule_id": schedule.id,
                "plan_id": a.plan_id,
                "title": a.title,
                "body": a.body,
                "snoozeable": a.snoozeable,
            },
        )
        for a in schedule.alarms
        if a.enabled and not a.completed
    ]


class MockAlarmScheduler:
    def __init__(self):
        self.scheduled: Dict[str, Trigger] = {}

    def create_alarms(self, schedule: Schedule) -> List[str]:
        handles = []
        for trigger in alarm_triggers(schedule):
            handle = "ntf_" + uuid.uuid4().hex[:10]
            self.scheduled[handle] = trigger
            handles.append(handle)
        return handles

    def cancel_alarms(self, handles: List[str]) -> None:
        for handle in handles:
            self.scheduled.pop(handle, None)


@lru_cache(maxsize=1)
def get_alarm_scheduler() -> AlarmScheduler:
    return MockAlarmScheduler()


def mock_create_alarms(schedule: Schedule) -> ToolResult:
    handles = get_alarm_scheduler().create_alarms(schedule)
    logger.info(f"[tools] scheduled {len(handles)} alarms for {schedule.id}")
    return ToolResult(
        ok=True,
        mock=True,
        details={"created": len(handles), "handles": handles, "schedule_id": schedule.id},
    )


def mock_cancel_alarms(handles: List[str]) -> ToolResult:
    get_alarm_scheduler().cancel_alarms(handles)
    logger.info(f"[tools] cancelled {len(handles)} alarms")
    return ToolResult(ok=True, mock=True, details={"cancelled": len(handles)})


def execute_action(action_type: str, schedule: Schedule, payload: Dict[str, Any]) -> ToolResult:
    if action_type == "CREATE_ALARMS":
        return mock_create_alarms(schedule)
    if action_type == "CANCEL_ALARMS":
        return mock_cancel_alarms(list(payload.get("handles") or []))
    return ToolResult(ok=False, mock=True, details={"error": f"Unknown action {action_type}"})
