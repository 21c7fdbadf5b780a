# photolarm/services/anchor_recommender.py
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from loguru import logger

from photolarm.schemas.models import Alarm, Anchor, Plan, Schedule, UserPreferences
from photolarm.services.constraints import is_in_sleep_window, meal_times_for_day
from photolarm.services.schedule_generator import InvalidPlanError, generate_flexible_schedule
from photolarm.utils.clock import (
    add_days,
    at_time_of_day,
    parse_iso,
    resolve_zone,
    start_of_day,
    to_iso,
    to_wall_clock,
    utc_now,
)

BASE_SCORE = 50
SLEEP_PENALTY = 20
MEAL_BONUS = 5
UNIFORM_BONUS = 10
MEAL_PROXIMITY = timedelta(minutes=30)
MIN_GAP = timedelta(hours=2)

REASON_AFTER_WAKING = "Starts right after your wake-up time"
REASON_WITH_BREAKFAST = "Starts with your breakfast"


def _next_occurrence(local_now: datetime, hhmm: str) -> datetime:
    # today's HH:mm unless it already passed, then tomorrow's
    candidate = at_time_of_day(start_of_day(local_now), hhmm)
    return add_days(candidate, 1) if candidate < local_now else candidate


def anchor_candidates(preferences: UserPreferences, current_time: datetime) -> List[Anchor]:
    zone = resolve_zone(preferences.timezone)
    local_now = to_wall_clock(current_time, zone)

    candidates = [Anchor(type="now", datetime=to_iso(current_time), timezone=preferences.timezone)]

    if preferences.sleep_window is not None:
        wake = _next_occurrence(local_now, preferences.sleep_window.end)
        candidates.append(Anchor(
            type="recommended",
            datetime=to_iso(wake),
            timezone=preferences.timezone,
            reason=REASON_AFTER_WAKING,
        ))

    if preferences.meal_times is not None and preferences.meal_times.breakfast:
        breakfast = _next_occurrence(local_now, preferences.meal_times.breakfast)
        candidates.append(Anchor(
            type="recommended",
            datetime=to_iso(breakfast),
            timezone=preferences.timezone,
            reason=REASON_WITH_BREAKFAST,
        ))

    return candidates


def is_near_meal_time(time: datetime, preferences: UserPreferences) -> bool:
    # neighbouring days too, so 00:10 is near a 23:55 dinner
    meals = [m for offset in (-1, 0, 1) for m in meal_times_for_day(add_days(time, offset), preferences)]
    return any(abs(time - meal) <= MEAL_PROXIMITY for meal in meals)


def is_uniform(alarms: List[Alarm]) -> bool:
    """True when no two consecutive alarms are less than two hours apart."""
    if len(alarms) < 2:
        return True
    times = sorted(parse_iso(a.datetime) for a in alarms)
    return all(later - earlier >= MIN_GAP for earlier, later in zip(times, times[1:]))


def score_schedule(schedule: Schedule, preferences: UserPreferences) -> int:
    zone = resolve_zone(preferences.timezone)
    score = BASE_SCORE

    for alarm in schedule.alarms:
        local = to_wall_clock(parse_iso(alarm.datetime), zone)
        if is_in_sleep_window(local, preferences):
            score -= SLEEP_PENALTY
        if is_near_meal_time(local, preferences):
            score += MEAL_BONUS

    if is_uniform(schedule.alarms):
        score += UNIFORM_BONUS

    return max(0, min(100, score))


def rank_anchors(
    plan: Plan,
    preferences: UserPreferences,
    current_time: Optional[datetime] = None,
) -> List[Tuple[Anchor, int]]:
    """Every candidate with its score, best first; ties keep generation order."""
    if plan.mode != "flexible" or plan.flexible_pattern is None:
        raise InvalidPlanError("Can only recommend anchor for flexible plans")

    current_time = current_time or utc_now()
    scored = []
    for anchor in anchor_candidates(preferences, current_time):
        trial = generate_flexible_schedule(plan, anchor, preferences, now=current_time)
        scored.append((anchor, score_schedule(trial, preferences)))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def recommend_anchor(
    plan: Plan,
    preferences: UserPreferences,
    current_time: Optional[datetime] = None,
) -> Anchor:
    ranked = rank_anchors(plan, preferences, current_time)
    best, score = ranked[0]
    logger.info(
        f"[anchor] plan {plan.id}: {len(ranked)} candidates, chose {best.type} at {best.datetime} (score={score})"
    )
    return best
