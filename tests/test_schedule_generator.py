"""Tests for fixed and flexible schedule generation."""

from datetime import timedelta

import pytest

from photolarm.schemas.models import (
    Anchor,
    Constraint,
    FixedEvent,
    FlexiblePattern,
    FlexiblePatternItem,
    IntervalHours,
    OncePerDay,
    Plan,
    TimesOfDay,
    TimesPerDay,
    UserPreferences,
)
from photolarm.services.schedule_generator import (
    InvalidPlanError,
    calculate_total_alarms,
    generate_fixed_schedule,
    generate_flexible_schedule,
)
from photolarm.utils.clock import parse_iso

from conftest import NEW_YEAR_8AM


def _flexible(*items: FlexiblePatternItem, plan_id: str = "plan_flex") -> Plan:
    return Plan(id=plan_id, mode="flexible", flexible_pattern=FlexiblePattern(items=list(items)))


def _times(schedule):
    return [a.datetime for a in schedule.alarms]


def _gaps(schedule):
    instants = [parse_iso(a.datetime) for a in schedule.alarms]
    return [b - a for a, b in zip(instants, instants[1:])]


def _assert_ordered(schedule):
    instants = [parse_iso(a.datetime) for a in schedule.alarms]
    assert instants == sorted(instants)


def test_interval_scenario(amoxicillin_plan, now_anchor):
    schedule = generate_flexible_schedule(amoxicillin_plan, now_anchor, UserPreferences(), now=NEW_YEAR_8AM)

    assert len(schedule.alarms) == 21
    assert schedule.alarms[0].datetime == "2025-01-01T08:00:00Z"
    assert schedule.alarms[-1].datetime == "2025-01-08T00:00:00Z"
    instants = [parse_iso(t) for t in _times(schedule)]
    assert all(b - a == timedelta(hours=8) for a, b in zip(instants, instants[1:]))
    assert schedule.anchor == now_anchor
    assert schedule.plan_id == "plan_amox"


def test_alarm_fields(amoxicillin_plan, now_anchor):
    schedule = generate_flexible_schedule(amoxicillin_plan, now_anchor, now=NEW_YEAR_8AM)
    alarm = schedule.alarms[1]

    assert alarm.id == "alarm-plan_amox-0-1"
    assert alarm.title == "Amoxicilina 500mg"
    assert alarm.enabled and alarm.snoozeable
    assert not alarm.triggered and not alarm.completed
    assert alarm.metadata == {
        "domain": "medication",
        "item_index": 0,
        "alarm_index": 1,
        "is_flexible": True,
        "original_datetime": "2025-01-01T16:00:00Z",
        "adjusted": False,
    }
    assert schedule.id == "schedule-plan_amox-1735718400000"
    assert schedule.created_at == schedule.updated_at == "2025-01-01T08:00:00Z"


def test_generation_is_deterministic(amoxicillin_plan, now_anchor, utc_preferences):
    first = generate_flexible_schedule(amoxicillin_plan, now_anchor, utc_preferences, now=NEW_YEAR_8AM)
    second = generate_flexible_schedule(amoxicillin_plan, now_anchor, utc_preferences, now=NEW_YEAR_8AM)
    assert first.model_dump_json() == second.model_dump_json()


def test_fixed_passthrough():
    starts = ["2025-03-01T09:00:00+01:00", "2025-03-02T10:30:00Z", "2025-03-03T08:00:00"]
    plan = Plan(
        id="plan_fixed",
        mode="fixed",
        domain="appointment",
        fixed_events=[FixedEvent(start_datetime_iso=s, title=f"Visit {i}") for i, s in enumerate(starts)],
    )

    schedule = generate_fixed_schedule(plan, now=NEW_YEAR_8AM)

    assert _times(schedule) == starts
    assert [a.metadata["event_index"] for a in schedule.alarms] == [0, 1, 2]
    assert all(a.metadata["is_fixed"] for a in schedule.alarms)
    assert schedule.anchor is None


def test_fixed_events_keep_input_order():
    plan = Plan(mode="fixed", fixed_events=[
        FixedEvent(start_datetime_iso="2025-01-03T10:00:00Z", title="c"),
        FixedEvent(start_datetime_iso="2025-01-01T10:00:00Z", title="a"),
    ])
    schedule = generate_fixed_schedule(plan, now=NEW_YEAR_8AM)
    assert [a.title for a in schedule.alarms] == ["c", "a"]
    assert [a.metadata["event_index"] for a in schedule.alarms] == [0, 1]


def test_fixed_keeps_alert_and_description():
    plan = Plan(mode="fixed", fixed_events=[
        FixedEvent(
            start_datetime_iso="2025-03-01T10:00:00Z",
            title="Dentist",
            description="Bring X-rays",
            alert_before_minutes=30,
            timezone="Europe/Madrid",
        ),
    ])
    alarm = generate_fixed_schedule(plan, now=NEW_YEAR_8AM).alarms[0]
    assert alarm.body == "Bring X-rays"
    assert alarm.alert_before_minutes == 30
    assert alarm.timezone == "Europe/Madrid"


@pytest.mark.parametrize(
    "plan",
    [
        Plan(mode="fixed"),
        Plan(mode="fixed", fixed_events=[]),
        Plan(mode="flexible", flexible_pattern=FlexiblePattern(items=[])),
    ],
)
def test_fixed_rejects_invalid_plans(plan):
    with pytest.raises(InvalidPlanError):
        generate_fixed_schedule(plan)


def test_flexible_rejects_invalid_plans(now_anchor):
    with pytest.raises(InvalidPlanError):
        generate_flexible_schedule(Plan(mode="flexible"), now_anchor)
    with pytest.raises(InvalidPlanError):
        generate_flexible_schedule(
            Plan(mode="fixed", flexible_pattern=FlexiblePattern(items=[])), now_anchor
        )


def test_invalid_plan_error_is_value_error():
    assert issubclass(InvalidPlanError, ValueError)


def test_times_per_day_slots_from_start_of_day(now_anchor):
    plan = _flexible(FlexiblePatternItem(times_per_day=3, duration_days=2, title="Drops"))
    anchor = Anchor(type="now", datetime="2025-01-01T10:00:00Z")

    schedule = generate_flexible_schedule(plan, anchor, now=NEW_YEAR_8AM)

    assert _times(schedule) == [
        "2025-01-01T00:00:00Z", "2025-01-01T08:00:00Z", "2025-01-01T16:00:00Z",
        "2025-01-02T00:00:00Z", "2025-01-02T08:00:00Z", "2025-01-02T16:00:00Z",
    ]


def test_times_of_day(now_anchor):
    plan = _flexible(FlexiblePatternItem(times_of_day=["08:00", "20:00"], duration_days=3, title="Inhaler"))

    schedule = generate_flexible_schedule(plan, now_anchor, now=NEW_YEAR_8AM)

    assert len(schedule.alarms) == 6
    assert schedule.alarms[0].datetime == "2025-01-01T08:00:00Z"
    assert schedule.alarms[-1].datetime == "2025-01-03T20:00:00Z"


def test_once_per_day_without_cadence(now_anchor):
    plan = _flexible(FlexiblePatternItem(duration_days=3, title="Walk"))

    schedule = generate_flexible_schedule(plan, now_anchor, now=NEW_YEAR_8AM)

    assert _times(schedule) == ["2025-01-02T08:00:00Z", "2025-01-03T08:00:00Z", "2025-01-04T08:00:00Z"]


def test_fractional_interval_has_no_drift(now_anchor):
    plan = _flexible(FlexiblePatternItem(interval_hours=0.25, duration_days=1, title="Stir"))

    schedule = generate_flexible_schedule(plan, now_anchor, now=NEW_YEAR_8AM)

    assert len(schedule.alarms) == 96
    assert schedule.alarms[-1].datetime == "2025-01-02T07:45:00Z"


def test_interval_steps_are_absolute_across_dst():
    # New York springs forward on 2025-03-09
    plan = _flexible(FlexiblePatternItem(interval_hours=8, duration_days=2, title="Antibiotic"))
    anchor = Anchor(type="now", datetime="2025-03-08T20:00:00Z")
    prefs = UserPreferences(timezone="America/New_York")

    schedule = generate_flexible_schedule(plan, anchor, prefs, now=NEW_YEAR_8AM)

    assert len(schedule.alarms) == 6
    assert _gaps(schedule) == [timedelta(hours=8)] * 5
    assert schedule.alarms[-1].datetime == "2025-03-10T12:00:00Z"


def test_times_per_day_slots_are_absolute_on_dst_day():
    plan = _flexible(FlexiblePatternItem(times_per_day=3, duration_days=1, title="Drops"))
    anchor = Anchor(type="now", datetime="2025-03-09T12:00:00Z")
    prefs = UserPreferences(timezone="America/New_York")

    schedule = generate_flexible_schedule(plan, anchor, prefs, now=NEW_YEAR_8AM)

    # local midnight is still EST (05:00Z), then every 8 real hours
    assert _times(schedule) == ["2025-03-09T05:00:00Z", "2025-03-09T13:00:00Z", "2025-03-09T21:00:00Z"]


def test_times_of_day_stay_on_wall_clock_across_dst():
    plan = _flexible(FlexiblePatternItem(times_of_day=["08:00"], duration_days=3, title="Inhaler"))
    anchor = Anchor(type="now", datetime="2025-03-08T12:00:00Z")
    prefs = UserPreferences(timezone="America/New_York")

    schedule = generate_flexible_schedule(plan, anchor, prefs, now=NEW_YEAR_8AM)

    assert _times(schedule) == ["2025-03-08T13:00:00Z", "2025-03-09T12:00:00Z", "2025-03-10T12:00:00Z"]


def test_cadence_priority():
    item = FlexiblePatternItem(interval_hours=6, times_per_day=2, times_of_day=["09:00"], title="x")
    assert item.cadence == IntervalHours(6)
    assert FlexiblePatternItem(times_per_day=2, times_of_day=["09:00"], title="x").cadence == TimesPerDay(2)
    assert FlexiblePatternItem(times_of_day=["09:00"], title="x").cadence == TimesOfDay(("09:00",))
    assert FlexiblePatternItem(title="x").cadence == OncePerDay()


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"interval_hours": 8, "duration_days": 7}, 21),
        ({"interval_hours": 5, "duration_days": 1}, 5),
        ({"times_per_day": 3, "duration_days": 4}, 12),
        ({"times_of_day": ["08:00", "14:00", "20:00"], "duration_days": 2}, 6),
        ({"interval_hours": 8}, 3),
        ({"duration_days": 5}, 5),
        ({"interval_hours": 6, "duration_doses": 5}, 5),
        ({"interval_hours": 6, "duration_days": 2, "duration_doses": 5}, 5),
        ({"interval_hours": 6, "duration_days": 1, "duration_doses": 10}, 4),
    ],
)
def test_calculate_total_alarms(fields, expected):
    assert calculate_total_alarms(FlexiblePatternItem(title="x", **fields)) == expected


def test_items_are_merged_in_time_order(now_anchor):
    plan = _flexible(
        FlexiblePatternItem(interval_hours=12, duration_days=1, title="Antibiotic", dosage="1 tablet"),
        FlexiblePatternItem(times_of_day=["12:00"], duration_days=1, title="Vitamin"),
    )

    schedule = generate_flexible_schedule(plan, now_anchor, now=NEW_YEAR_8AM)

    assert [a.title for a in schedule.alarms] == ["Antibiotic", "Vitamin", "Antibiotic"]
    assert [a.metadata["item_index"] for a in schedule.alarms] == [0, 1, 0]
    assert schedule.alarms[0].metadata["dosage"] == "1 tablet"
    assert "dosage" not in schedule.alarms[1].metadata
    _assert_ordered(schedule)


def test_constraints_adjust_alarms(utc_preferences):
    plan = _flexible(FlexiblePatternItem(
        interval_hours=8,
        duration_days=1,
        title="Antibiotic",
        constraints=[Constraint(type="avoid_sleep", priority="required")],
    ))
    anchor = Anchor(type="user_selected", datetime="2025-01-01T20:00:00Z")

    schedule = generate_flexible_schedule(plan, anchor, utc_preferences, now=NEW_YEAR_8AM)

    assert _times(schedule) == ["2025-01-01T20:00:00Z", "2025-01-02T07:00:00Z", "2025-01-02T12:00:00Z"]
    moved = schedule.alarms[1]
    assert moved.metadata["adjusted"] is True
    assert moved.metadata["original_datetime"] == "2025-01-02T04:00:00Z"
    assert moved.timezone == "UTC"


def test_adjustments_do_not_shift_following_alarms(utc_preferences):
    # next trigger is computed from the previous raw instant
    plan = _flexible(FlexiblePatternItem(
        interval_hours=8,
        duration_days=2,
        title="Antibiotic",
        constraints=[Constraint(type="with_meal")],
    ))

    schedule = generate_flexible_schedule(plan, Anchor(type="now", datetime="2025-01-01T09:00:00Z"), utc_preferences, now=NEW_YEAR_8AM)

    originals = [parse_iso(a.metadata["original_datetime"]) for a in sorted(schedule.alarms, key=lambda a: a.metadata["alarm_index"])]
    assert all(b - a == timedelta(hours=8) for a, b in zip(originals, originals[1:]))
    _assert_ordered(schedule)
