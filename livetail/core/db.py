"""
SQLite foundation for the event collections.
One table per collection, keyed by a 12 byte fixed-width record id.
"""

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable, Optional

from .config import DB_PATH

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def check_collection_name(name: str) -> str:
    """Collection names are interpolated into SQL, so only plain identifiers pass."""
    if not isinstance(name, str) or not _IDENTIFIER.fullmatch(name):
        raise ValueError(f"Invalid collection name: {name!r}")
    return name


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or DB_PATH
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(collections: Iterable[str], db_path: Optional[str] = None):
    """Initialize the database with one append-only table per collection."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        for name in collections:
            table = check_collection_name(name)
            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS {table} (
                    id BLOB PRIMARY KEY,       -- 12 byte record key, memcmp order
                    category TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    fields TEXT NOT NULL       -- JSON payload
                )
            ''')

        conn.commit()


def health_check(collections: Iterable[str], db_path: Optional[str] = None) -> bool:
    """Check database health: every configured collection table must exist."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = {row[0] for row in cursor.fetchall()}
            return all(name in table_names for name in collections)
    except Exception:
        return False
