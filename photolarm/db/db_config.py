# photolarm/db/db_config.py

import sqlite3
from pathlib import Path
from typing import Optional

from photolarm.core.config import PHOTOLARM_DB_PATH


def get_sqlite_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Create and configure SQLite connection with recommended PRAGMA settings.
    ":memory:" is accepted for throwaway databases.
    """
    path = db_path or PHOTOLARM_DB_PATH
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)

    # Performance & concurrency settings
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")

    return conn
