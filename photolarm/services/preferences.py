# photolarm/services/preferences.py
from functools import lru_cache
from typing import Optional

from loguru import logger

from photolarm.core.config import PHOTOLARM_DEFAULT_TIMEZONE, PREFERENCES_STORAGE_KEY
from photolarm.schemas.models import MealTimes, SleepWindow, UserPreferences
from photolarm.services.storage import KeyValueStore, SqliteKeyValueStore


def default_preferences() -> UserPreferences:
    return UserPreferences(
        sleep_window=SleepWindow(start="23:00", end="07:00"),
        meal_times=MealTimes(breakfast="08:00", lunch="13:00", dinner="20:00"),
        timezone=PHOTOLARM_DEFAULT_TIMEZONE,
    )


class PreferencesService:
    def __init__(self, persistence: Optional[KeyValueStore] = None, storage_key: str = PREFERENCES_STORAGE_KEY):
        self._persistence = persistence
        self._storage_key = storage_key
        self.preferences = default_preferences()

        if persistence is not None:
            raw = persistence.get(storage_key)
            if raw is not None:
                self.preferences = UserPreferences.model_validate(raw)

    def _save(self) -> UserPreferences:
        if self._persistence is not None:
            self._persistence.set(self._storage_key, self.preferences.model_dump(mode="json"))
        return self.preferences

    def update(self, **partial) -> UserPreferences:
        merged = {**self.preferences.model_dump(), **partial}
        self.preferences = UserPreferences.model_validate(merged)
        return self._save()

    def replace(self, preferences: UserPreferences) -> UserPreferences:
        self.preferences = preferences
        return self._save()

    def set_sleep_window(self, start: str, end: str) -> UserPreferences:
        return self.update(sleep_window={"start": start, "end": end})

    def set_meal_times(
        self,
        breakfast: Optional[str] = None,
        lunch: Optional[str] = None,
        dinner: Optional[str] = None,
    ) -> UserPreferences:
        # unspecified meals keep their current value
        current = self.preferences.meal_times or MealTimes()
        return self.update(meal_times={
            "breakfast": breakfast or current.breakfast,
            "lunch": lunch or current.lunch,
            "dinner": dinner or current.dinner,
        })

    def set_timezone(self, timezone: str) -> UserPreferences:
        return self.update(timezone=timezone)

    def reset_to_defaults(self) -> UserPreferences:
        self.preferences = default_preferences()
        logger.info("[preferences] reset to defaults")
        return self._save()


@lru_cache(maxsize=1)
def get_preferences_service() -> PreferencesService:
    return PreferencesService(persistence=SqliteKeyValueStore())
