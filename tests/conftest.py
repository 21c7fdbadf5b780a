"""Shared fixtures for the photolarm test suite."""

from datetime import datetime, timezone

import pytest

from photolarm.schemas.models import (
    Anchor,
    ExtractedMedicationValues,
    FlexiblePattern,
    FlexiblePatternItem,
    MealTimes,
    Plan,
    SleepWindow,
    UserPreferences,
)
from photolarm.services.learning_store import LearningStore
from photolarm.services.storage import InMemoryKeyValueStore
from photolarm.services.tools import get_alarm_scheduler

NEW_YEAR_8AM = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for stores that stamp times."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NEW_YEAR_8AM)


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def learning_store(kv, clock) -> LearningStore:
    return LearningStore(persistence=kv, clock=clock)


@pytest.fixture
def ibuprofen_values() -> ExtractedMedicationValues:
    return ExtractedMedicationValues(
        medication_name="Ibuprofeno",
        frequency_hours=8,
        duration_days=6,
        dosage="400mg",
    )


@pytest.fixture
def utc_preferences() -> UserPreferences:
    return UserPreferences(
        sleep_window=SleepWindow(start="23:00", end="07:00"),
        meal_times=MealTimes(breakfast="08:00", lunch="13:00", dinner="20:00"),
        timezone="UTC",
    )


@pytest.fixture
def amoxicillin_plan() -> Plan:
    return Plan(
        id="plan_amox",
        mode="flexible",
        domain="medication",
        category="health",
        flexible_pattern=FlexiblePattern(items=[
            FlexiblePatternItem(interval_hours=8, duration_days=7, title="Amoxicilina 500mg"),
        ]),
    )


@pytest.fixture
def now_anchor() -> Anchor:
    return Anchor(type="now", datetime="2025-01-01T08:00:00Z")


@pytest.fixture(autouse=True)
def fresh_alarm_scheduler():
    get_alarm_scheduler.cache_clear()
    yield
    get_alarm_scheduler.cache_clear()
