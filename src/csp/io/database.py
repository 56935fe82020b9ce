"""SQLite connection setup shared by the campaign and job stores."""

import sqlite3
from pathlib import Path


def connect(db_path: Path, timeout: float = 30.0) -> sqlite3.Connection:
    """Open a connection tuned for several concurrent worker processes.

    WAL lets readers proceed while a worker writes; ``timeout`` makes
    competing writers wait for the lock instead of failing.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(db_path), isolation_level="DEFERRED", check_same_thread=False, timeout=timeout
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA temp_store = MEMORY")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
