from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional


def get_connection(db_path: str, timeout: Optional[float] = 30.0) -> sqlite3.Connection:
    """Open a SQLite connection with sane pragmas for concurrent local use.

    - parent directory created on demand
    - WAL journal for fewer writer blocks
    - NORMAL synchronous for performance
    - foreign_keys ON so people rows cascade with their company
    """
    if db_path != ":memory:":
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=timeout or 30.0)
    # Pragmas
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn
