# photolarm/services/schedule_generator.py
"""
Turns plans into schedules. Pure functions: the same plan, anchor,
preferences and `now` always give the same schedule.

Fixed plans map each event 1:1 to an alarm, in input order. Flexible plans
expand every pattern item from the anchor according to its cadence, pass each
raw trigger through the item's constraints, then sort all alarms by time.
Hour steps are absolute; day steps and "HH:mm" stay on the wall clock.
"""
import math
from datetime import datetime
from typing import List, Optional

from loguru import logger

from photolarm.schemas.models import (
    Alarm,
    Anchor,
    FixedEvent,
    FlexiblePatternItem,
    IntervalHours,
    Plan,
    Schedule,
    TimesOfDay,
    TimesPerDay,
    UserPreferences,
)
from photolarm.services.constraints import apply_constraints
from photolarm.utils.clock import (
    add_exact,
    add_days,
    at_time_of_day,
    hours_to_timedelta,
    parse_iso,
    resolve_zone,
    start_of_day,
    to_iso,
    to_wall_clock,
    utc_now,
)


class InvalidPlanError(ValueError):
    pass


def _schedule_id(plan: Plan, now: datetime) -> str:
    return f"schedule-{plan.id}-{int(now.timestamp() * 1000)}"


# ---------------------------------------------------------------------------
# Fixed plans
# ---------------------------------------------------------------------------

def fixed_event_to_alarm(event: FixedEvent, plan: Plan, index: int) -> Alarm:
    return Alarm(
        id=f"alarm-{plan.id}-{index}",
        plan_id=plan.id,
        datetime=event.start_datetime_iso,
        timezone=event.timezone or "local",
        title=event.title,
        body=event.description or "",
        alert_before_minutes=event.alert_before_minutes,
        metadata={
            "domain": plan.domain,
            "event_index": index,
            "is_fixed": True,
        },
    )


def generate_fixed_schedule(plan: Plan, now: Optional[datetime] = None) -> Schedule:
    if plan.mode != "fixed" or not plan.fixed_events:
        raise InvalidPlanError("Plan must be in fixed mode with fixed_events")

    now = now or utc_now()
    alarms = [fixed_event_to_alarm(ev, plan, i) for i, ev in enumerate(plan.fixed_events)]
    stamp = to_iso(now)

    logger.debug(f"[schedule] fixed plan {plan.id}: {len(alarms)} alarms")
    return Schedule(
        id=_schedule_id(plan, now),
        plan_id=plan.id,
        anchor=None,
        alarms=alarms,
        created_at=stamp,
        updated_at=stamp,
    )


# ---------------------------------------------------------------------------
# Flexible plans
# ---------------------------------------------------------------------------

def calculate_total_alarms(item: FlexiblePatternItem) -> int:
    days = item.duration_days or 1
    cadence = item.cadence

    if isinstance(cadence, IntervalHours):
        total = math.ceil((24 / cadence.hours) * days)
    elif isinstance(cadence, TimesPerDay):
        total = cadence.count * days
    elif isinstance(cadence, TimesOfDay):
        total = len(cadence.times) * days
    else:
        total = days

    if item.duration_doses is not None:
        # doses alone define the count; with a duration they cap it
        total = item.duration_doses if item.duration_days is None else min(total, item.duration_doses)
    return total


def calculate_trigger(previous: datetime, anchor_time: datetime, item: FlexiblePatternItem, index: int) -> datetime:
    """
    Raw trigger for alarm `index`. `previous` is the raw trigger of the alarm
    before it (the anchor for index 0), `anchor_time` is on the wall clock of
    the preference timezone.
    """
    cadence = item.cadence

    if isinstance(cadence, IntervalHours):
        if index == 0:
            return anchor_time
        return add_exact(previous, hours_to_timedelta(cadence.hours))

    if isinstance(cadence, TimesPerDay):
        day_number, slot = divmod(index, cadence.count)
        day = add_days(start_of_day(anchor_time), day_number)
        return add_exact(day, hours_to_timedelta(24 / cadence.count * slot))

    if isinstance(cadence, TimesOfDay):
        day_number, slot = divmod(index, len(cadence.times))
        day = add_days(start_of_day(anchor_time), day_number)
        return at_time_of_day(day, cadence.times[slot])

    # OncePerDay
    return add_days(anchor_time, index + 1)


def generate_alarms_for_item(
    item: FlexiblePatternItem,
    anchor_time: datetime,
    plan: Plan,
    item_index: int,
    preferences: UserPreferences,
) -> List[Alarm]:
    alarms: List[Alarm] = []
    previous = anchor_time

    for alarm_index in range(calculate_total_alarms(item)):
        raw = calculate_trigger(previous, anchor_time, item, alarm_index)
        adjusted = apply_constraints(raw, item.constraints, preferences)

        metadata = {
            "domain": plan.domain,
            "item_index": item_index,
            "alarm_index": alarm_index,
            "is_flexible": True,
            "original_datetime": to_iso(raw),
            "adjusted": adjusted != raw,
        }
        if item.dosage:
            metadata["dosage"] = item.dosage

        alarms.append(Alarm(
            id=f"alarm-{plan.id}-{item_index}-{alarm_index}",
            plan_id=plan.id,
            datetime=to_iso(adjusted),
            timezone=preferences.timezone,
            title=item.title,
            body=item.description or "",
            metadata=metadata,
        ))
        previous = raw

    return alarms


def generate_flexible_schedule(
    plan: Plan,
    anchor: Anchor,
    preferences: Optional[UserPreferences] = None,
    now: Optional[datetime] = None,
) -> Schedule:
    if plan.mode != "flexible" or plan.flexible_pattern is None:
        raise InvalidPlanError("Plan must be in flexible mode with flexible_pattern")

    preferences = preferences or UserPreferences()
    now = now or utc_now()
    zone = resolve_zone(preferences.timezone)
    anchor_time = to_wall_clock(parse_iso(anchor.datetime), zone)

    alarms: List[Alarm] = []
    for item_index, item in enumerate(plan.flexible_pattern.items):
        alarms.extend(generate_alarms_for_item(item, anchor_time, plan, item_index, preferences))

    # stable: equal instants keep item order
    alarms.sort(key=lambda a: parse_iso(a.datetime))

    logger.debug(
        f"[schedule] flexible plan {plan.id}: {len(alarms)} alarms from anchor {anchor.datetime} ({anchor.type})"
    )
    stamp = to_iso(now)
    return Schedule(
        id=_schedule_id(plan, now),
        plan_id=plan.id,
        anchor=anchor,
        alarms=alarms,
        created_at=stamp,
        updated_at=stamp,
    )
