# photolarm/services/constraints.py
"""
Timing constraints for flexible plan items.

Constraints are applied in priority order (required, preferred, optional).
Optional constraints never move a trigger. For meal-relative constraints and
avoid_sleep, "preferred" is currently informational only: the closest slot is
computed but the original time is kept. upon_waking and before_sleep apply
for both required and preferred.

All "same day" reasoning happens on the wall clock of the preference
timezone (see utils.clock.resolve_zone).
"""
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from photolarm.schemas.models import Constraint, UserPreferences
from photolarm.utils.clock import (
    add_days,
    at_time_of_day,
    hhmm_to_minutes,
    minutes_of_day,
    resolve_zone,
    start_of_day,
    to_wall_clock,
)

# offsets from the configured meal times
BEFORE_MEAL = timedelta(minutes=-30)
AFTER_MEAL = timedelta(minutes=30)
EMPTY_STOMACH = timedelta(hours=2)

_MEAL_OFFSETS = {
    "with_meal": timedelta(0),
    "before_meal": BEFORE_MEAL,
    "after_meal": AFTER_MEAL,
    "empty_stomach": EMPTY_STOMACH,
}


def meal_times_for_day(day: datetime, preferences: UserPreferences) -> List[datetime]:
    """Configured meals (breakfast, lunch, dinner order) on the calendar day of `day`."""
    if preferences.meal_times is None:
        return []
    base = start_of_day(day)
    return [at_time_of_day(base, hhmm) for hhmm in preferences.meal_times.configured()]


def move_to_closest_time(time: datetime, targets: Sequence[datetime], priority: str) -> datetime:
    if priority == "optional" or not targets:
        return time

    # targets are moved onto the calendar day of `time`
    day = start_of_day(time)
    same_day = [day.replace(hour=t.hour, minute=t.minute) for t in targets]

    closest = same_day[0]
    min_diff = abs(time - closest)
    for target in same_day[1:]:
        diff = abs(time - target)
        if diff < min_diff:
            min_diff = diff
            closest = target

    return closest if priority == "required" else time


def is_in_sleep_window(time: datetime, preferences: UserPreferences) -> bool:
    if preferences.sleep_window is None:
        return False

    start = hhmm_to_minutes(preferences.sleep_window.start)
    end = hhmm_to_minutes(preferences.sleep_window.end)
    now = minutes_of_day(time)

    if start > end:  # wraps midnight, e.g. 23:00-07:00
        return now >= start or now <= end
    return start <= now <= end


def sleep_window_end(time: datetime, preferences: UserPreferences) -> datetime:
    """Wake-up time on the day of `time`, or the next day if that already passed."""
    if preferences.sleep_window is None:
        return time

    result = at_time_of_day(start_of_day(time), preferences.sleep_window.end)
    if result < time:
        result = add_days(result, 1)
    return result


def sleep_window_start(time: datetime, preferences: UserPreferences) -> datetime:
    if preferences.sleep_window is None:
        return time
    return at_time_of_day(start_of_day(time), preferences.sleep_window.start)


def _apply_local(time: datetime, constraint: Constraint, preferences: UserPreferences) -> datetime:
    ctype = constraint.type

    if ctype in _MEAL_OFFSETS:
        offset = _MEAL_OFFSETS[ctype]
        targets = [t + offset for t in meal_times_for_day(time, preferences)]
        return move_to_closest_time(time, targets, constraint.priority)

    if ctype == "avoid_sleep":
        if is_in_sleep_window(time, preferences):
            return sleep_window_end(time, preferences) if constraint.priority == "required" else time
        return time

    if ctype == "upon_waking":
        return sleep_window_end(time, preferences)

    if ctype == "before_sleep":
        return sleep_window_start(time, preferences)

    # specific_time is already pinned by times_of_day; unknown types are ignored
    return time


def apply_constraint(time: datetime, constraint: Constraint, preferences: UserPreferences) -> datetime:
    if constraint.priority == "optional":
        return time

    zone = resolve_zone(preferences.timezone)
    local = to_wall_clock(time, zone)
    adjusted = _apply_local(local, constraint, preferences)
    return time if adjusted == local else adjusted


def apply_constraints(
    time: datetime,
    constraints: Optional[Sequence[Constraint]],
    preferences: UserPreferences,
) -> datetime:
    ordered = sorted(constraints or [], key=lambda c: c.rank, reverse=True)

    adjusted = time
    for constraint in ordered:
        if constraint.priority == "optional":
            continue
        adjusted = apply_constraint(adjusted, constraint, preferences)
    return adjusted
