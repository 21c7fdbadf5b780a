import os
from pathlib import Path

from photolarm.core.env import load_env

load_env()

PROJECT_ROOT = Path(__file__).resolve().parents[2]

PHOTOLARM_DB_PATH = os.getenv("PHOTOLARM_DB_PATH", str(PROJECT_ROOT / "photolarm" / "db" / "photolarm.db"))
PHOTOLARM_LOG_LEVEL = os.getenv("PHOTOLARM_LOG_LEVEL", "INFO").upper()
PHOTOLARM_LOG_FILE = os.getenv("PHOTOLARM_LOG_FILE") or None

# "local" keeps the UTC offset carried by each instant
PHOTOLARM_DEFAULT_TIMEZONE = os.getenv("PHOTOLARM_DEFAULT_TIMEZONE", "local")

PATTERNS_STORAGE_KEY = "learned-patterns"
SCHEDULES_STORAGE_KEY = "schedules"
PREFERENCES_STORAGE_KEY = "preferences"
