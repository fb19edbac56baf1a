# survey_app/db/core.py
from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Optional


def resolve_db_path() -> Path:
    return Path(os.getenv("DB_PATH", "app.db")).resolve()


def open_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Single entry point for sqlite connections.

    - isolation_level=None: transactions are opened explicitly
      (BEGIN IMMEDIATE) by the repositories that need them
    - timeout: wait for a competing writer instead of failing at once
    """
    conn = sqlite3.connect(
        str(db_path or resolve_db_path()),
        timeout=10,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn
