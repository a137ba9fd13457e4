"""
Database connection management.

Provides the SQLite connection backing the persisted key/value state.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".paid-search.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.
    
    Args:
        db_path: Path to SQLite database file
        
    Returns:
        SQLite connection
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the app_state key/value table if it doesn't exist.
    
    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def read_value(key: str, db_path: str = DEFAULT_DB_PATH):
    """Return the stored string for key, or None when absent."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT value FROM app_state WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None
    finally:
        conn.close()


def write_value(key: str, value: str, db_path: str = DEFAULT_DB_PATH) -> None:
    """Replace the stored string for key in a single transaction."""
    conn = get_connection(db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)",
            (key, value)
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
