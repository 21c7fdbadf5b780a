# photolarm/services/schedule_book.py
"""
Caller-owned collection of generated schedules and the alarm lifecycle
(trigger, complete, snooze, enable) plus whole-schedule edits.
"""
import math
import threading
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from photolarm.core.config import SCHEDULES_STORAGE_KEY
from photolarm.schemas.models import Alarm, Schedule
from photolarm.services.storage import KeyValueStore, SqliteKeyValueStore
from photolarm.utils.clock import hours_to_timedelta, parse_iso, to_iso, utc_now


class ScheduleBook:
    def __init__(
        self,
        persistence: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = utc_now,
        storage_key: str = SCHEDULES_STORAGE_KEY,
    ):
        self.schedules: List[Schedule] = []
        self._persistence = persistence
        self._clock = clock
        self._storage_key = storage_key
        self._lock = threading.RLock()

        if persistence is not None:
            raw = persistence.get(storage_key) or []
            self.schedules = [Schedule.model_validate(s) for s in raw]

    def _save(self) -> None:
        if self._persistence is not None:
            self._persistence.set(self._storage_key, [s.model_dump(mode="json") for s in self.schedules])

    def _touch(self, schedule: Schedule) -> None:
        schedule.updated_at = to_iso(self._clock())

    # -- schedules -----------------------------------------------------------

    def add_schedule(self, schedule: Schedule) -> Schedule:
        with self._lock:
            self.schedules.append(schedule)
            self._save()
        return schedule

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        return next((s for s in self.schedules if s.id == schedule_id), None)

    def schedules_for_plan(self, plan_id: str) -> List[Schedule]:
        return [s for s in self.schedules if s.plan_id == plan_id]

    def update_schedule(self, schedule_id: str, updates: Dict[str, Any]) -> Optional[Schedule]:
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            if schedule is None:
                return None
            updated = schedule.model_copy(update=updates)
            self._touch(updated)
            self.schedules = [updated if s.id == schedule_id else s for s in self.schedules]
            self._save()
        return updated

    def delete_schedule(self, schedule_id: str) -> bool:
        with self._lock:
            before = len(self.schedules)
            self.schedules = [s for s in self.schedules if s.id != schedule_id]
            removed = len(self.schedules) != before
            if removed:
                self._save()
        return removed

    def clear(self) -> None:
        with self._lock:
            self.schedules = []
            self._save()

    # -- alarms --------------------------------------------------------------

    def _find_alarm(self, schedule_id: str, alarm_id: str):
        schedule = self.get_schedule(schedule_id)
        if schedule is None:
            return None, None
        return schedule, next((a for a in schedule.alarms if a.id == alarm_id), None)

    def update_alarm(self, schedule_id: str, alarm_id: str, **updates: Any) -> Optional[Alarm]:
        with self._lock:
            schedule, alarm = self._find_alarm(schedule_id, alarm_id)
            if alarm is None:
                return None
            for field, value in updates.items():
                setattr(alarm, field, value)
            self._touch(schedule)
            self._save()
        return alarm

    def delete_alarm(self, schedule_id: str, alarm_id: str) -> bool:
        with self._lock:
            schedule, alarm = self._find_alarm(schedule_id, alarm_id)
            if alarm is None:
                return False
            schedule.alarms = [a for a in schedule.alarms if a.id != alarm_id]
            self._touch(schedule)
            if not schedule.alarms:
                # a schedule without alarms is dropped
                self.schedules = [s for s in self.schedules if s.id != schedule_id]
            self._save()
        return True

    def mark_triggered(self, schedule_id: str, alarm_id: str) -> Optional[Alarm]:
        return self.update_alarm(schedule_id, alarm_id, triggered=True)

    def mark_completed(self, schedule_id: str, alarm_id: str) -> Optional[Alarm]:
        return self.update_alarm(schedule_id, alarm_id, completed=True, completed_at=to_iso(self._clock()))

    def snooze(self, schedule_id: str, alarm_id: str, minutes: int) -> Optional[Alarm]:
        _, alarm = self._find_alarm(schedule_id, alarm_id)
        if alarm is None:
            return None
        metadata = dict(alarm.metadata)
        metadata["snoozed_count"] = int(metadata.get("snoozed_count") or 0) + 1
        return self.update_alarm(
            schedule_id,
            alarm_id,
            datetime=to_iso(parse_iso(alarm.datetime) + timedelta(minutes=minutes)),
            metadata=metadata,
        )

    def toggle_enabled(self, schedule_id: str, alarm_id: str) -> Optional[Alarm]:
        _, alarm = self._find_alarm(schedule_id, alarm_id)
        if alarm is None:
            return None
        return self.update_alarm(schedule_id, alarm_id, enabled=not alarm.enabled)

    # -- schedule editing ----------------------------------------------------

    def _sorted_alarms(self, schedule: Schedule) -> List[Alarm]:
        return sorted(schedule.alarms, key=lambda a: parse_iso(a.datetime))

    def _respaced(self, schedule: Schedule, first: Alarm, start: datetime, step: timedelta, count: int) -> List[Alarm]:
        return [
            first.model_copy(update={
                "id": first.id if i == 0 else f"{schedule.id}-alarm-{i}",
                "datetime": to_iso(start + step * i),
                "triggered": False,
                "completed": False,
                "completed_at": None,
            }, deep=True)
            for i in range(count)
        ]

    def shift_start(self, schedule_id: str, new_start_iso: str) -> Optional[Schedule]:
        """Move every alarm by the offset between the first alarm and `new_start_iso`."""
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            if schedule is None or not schedule.alarms:
                return None
            alarms = self._sorted_alarms(schedule)
            offset = parse_iso(new_start_iso) - parse_iso(alarms[0].datetime)
            for alarm in alarms:
                alarm.datetime = to_iso(parse_iso(alarm.datetime) + offset)
            schedule.alarms = alarms
            self._touch(schedule)
            self._save()
        return schedule

    def change_duration(self, schedule_id: str, days: int) -> Optional[Schedule]:
        """Regenerate the alarm count for `days`, keeping the spacing of the first two alarms."""
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            if schedule is None or len(schedule.alarms) < 2:
                return None
            alarms = self._sorted_alarms(schedule)
            start = parse_iso(alarms[0].datetime)
            step = parse_iso(alarms[1].datetime) - start
            if step <= timedelta(0):
                return None
            count = math.ceil(timedelta(days=days) / step)
            schedule.alarms = self._respaced(schedule, alarms[0], start, step, count)
            self._touch(schedule)
            self._save()
        logger.info(f"[schedules] {schedule_id}: duration set to {days} days ({count} alarms)")
        return schedule

    def change_frequency(self, schedule_id: str, hours: float) -> Optional[Schedule]:
        """Re-space alarms every `hours` over the span the schedule already covers."""
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            if schedule is None or not schedule.alarms:
                return None
            alarms = self._sorted_alarms(schedule)
            start = parse_iso(alarms[0].datetime)
            span = parse_iso(alarms[-1].datetime) - start
            step = hours_to_timedelta(hours)
            if step <= timedelta(0):
                return None
            count = math.ceil(span / step) + 1
            schedule.alarms = self._respaced(schedule, alarms[0], start, step, count)
            self._touch(schedule)
            self._save()
        logger.info(f"[schedules] {schedule_id}: frequency set to every {hours}h ({count} alarms)")
        return schedule

    # -- queries -------------------------------------------------------------

    def _all_alarms(self) -> List[Alarm]:
        return [a for s in self.schedules for a in s.alarms]

    def upcoming_alarms(self, limit: int = 10, now: Optional[datetime] = None) -> List[Alarm]:
        now = now or self._clock()
        upcoming = [
            a for a in self._all_alarms()
            if a.enabled and not a.completed and parse_iso(a.datetime) > now
        ]
        upcoming.sort(key=lambda a: parse_iso(a.datetime))
        return upcoming[:limit]

    def active_alarms(self) -> List[Alarm]:
        return [a for a in self._all_alarms() if a.enabled and not a.completed and not a.triggered]

    def pending_alarms(self, now: Optional[datetime] = None) -> List[Alarm]:
        now = now or self._clock()
        return [
            a for a in self._all_alarms()
            if a.enabled and a.triggered and not a.completed and parse_iso(a.datetime) <= now
        ]

    def completed_alarms(self) -> List[Alarm]:
        return [a for a in self._all_alarms() if a.completed]


@lru_cache(maxsize=1)
def get_schedule_book() -> ScheduleBook:
    return ScheduleBook(persistence=SqliteKeyValueStore())
