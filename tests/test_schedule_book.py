"""Tests for the schedule book and alarm lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from photolarm.services.schedule_book import ScheduleBook
from photolarm.services.schedule_generator import generate_flexible_schedule
from photolarm.utils.clock import parse_iso

from conftest import NEW_YEAR_8AM

NOON = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def schedule(amoxicillin_plan, now_anchor):
    return generate_flexible_schedule(amoxicillin_plan, now_anchor, now=NEW_YEAR_8AM)


@pytest.fixture
def book(kv, clock, schedule):
    clock.now = NOON
    b = ScheduleBook(persistence=kv, clock=clock)
    b.add_schedule(schedule)
    return b


def _gaps(schedule):
    instants = [parse_iso(a.datetime) for a in schedule.alarms]
    return {b - a for a, b in zip(instants, instants[1:])}


def test_lookup(book, schedule):
    assert book.get_schedule(schedule.id) is schedule
    assert book.schedules_for_plan("plan_amox") == [schedule]
    assert book.get_schedule("missing") is None


def test_persists_through_store(book, kv, clock, schedule):
    reloaded = ScheduleBook(persistence=kv, clock=clock)
    assert reloaded.get_schedule(schedule.id) == schedule


def test_update_schedule_refreshes_updated_at(book, schedule):
    updated = book.update_schedule(schedule.id, {"anchor": None})

    assert updated.anchor is None
    assert updated.updated_at == "2025-01-01T12:00:00Z"
    assert updated.created_at == "2025-01-01T08:00:00Z"
    assert book.update_schedule("missing", {}) is None


def test_delete_and_clear(book, schedule):
    assert book.delete_schedule(schedule.id) is True
    assert book.delete_schedule(schedule.id) is False
    book.add_schedule(schedule)
    book.clear()
    assert book.schedules == []


def test_delete_last_alarm_drops_schedule(book, schedule):
    for alarm in list(schedule.alarms)[:-1]:
        assert book.delete_alarm(schedule.id, alarm.id)
    assert book.get_schedule(schedule.id) is not None

    assert book.delete_alarm(schedule.id, schedule.alarms[0].id)
    assert book.get_schedule(schedule.id) is None
    assert book.delete_alarm(schedule.id, "alarm-x") is False


def test_trigger_complete_lifecycle(book, schedule):
    first, second = schedule.alarms[0], schedule.alarms[1]

    book.mark_triggered(schedule.id, first.id)
    assert book.pending_alarms() == [first]
    assert first not in book.active_alarms()
    assert second in book.active_alarms()

    book.mark_completed(schedule.id, first.id)
    assert first.completed_at == "2025-01-01T12:00:00Z"
    assert book.pending_alarms() == []
    assert book.completed_alarms() == [first]


def test_snooze_moves_alarm_and_counts(book, schedule):
    alarm = schedule.alarms[0]

    book.snooze(schedule.id, alarm.id, 10)
    book.snooze(schedule.id, alarm.id, 5)

    assert alarm.datetime == "2025-01-01T08:15:00Z"
    assert alarm.metadata["snoozed_count"] == 2
    assert book.snooze(schedule.id, "missing", 5) is None


def test_toggle_enabled(book, schedule):
    alarm = schedule.alarms[3]
    assert book.toggle_enabled(schedule.id, alarm.id).enabled is False
    assert alarm not in book.upcoming_alarms(limit=50)
    assert book.toggle_enabled(schedule.id, alarm.id).enabled is True


def test_upcoming_alarms(book, schedule):
    upcoming = book.upcoming_alarms(limit=3)
    assert [a.datetime for a in upcoming] == [
        "2025-01-01T16:00:00Z", "2025-01-02T00:00:00Z", "2025-01-02T08:00:00Z",
    ]
    later = book.upcoming_alarms(limit=100, now=NOON + timedelta(days=6))
    assert [a.datetime for a in later] == ["2025-01-07T16:00:00Z", "2025-01-08T00:00:00Z"]


def test_shift_start(book, schedule):
    shifted = book.shift_start(schedule.id, "2025-01-01T10:00:00Z")

    assert shifted.alarms[0].datetime == "2025-01-01T10:00:00Z"
    assert shifted.alarms[-1].datetime == "2025-01-08T02:00:00Z"
    assert _gaps(shifted) == {timedelta(hours=8)}


def test_change_duration(book, schedule):
    changed = book.change_duration(schedule.id, 3)

    assert len(changed.alarms) == 9
    assert changed.alarms[0].id == "alarm-plan_amox-0-0"
    assert changed.alarms[1].id == f"{schedule.id}-alarm-1"
    assert _gaps(changed) == {timedelta(hours=8)}


def test_change_frequency(book, schedule):
    changed = book.change_frequency(schedule.id, 12)

    # 160h span every 12h
    assert len(changed.alarms) == 15
    assert changed.alarms[0].datetime == "2025-01-01T08:00:00Z"
    assert _gaps(changed) == {timedelta(hours=12)}
    assert book.change_frequency(schedule.id, 0) is None


def test_edits_on_unknown_schedule(book):
    assert book.shift_start("missing", "2025-01-01T10:00:00Z") is None
    assert book.change_duration("missing", 3) is None
    assert book.change_frequency("missing", 3) is None
