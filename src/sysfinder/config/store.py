"""
Persisted configuration store for the AI System Finder.

A small SQLite database holding a key/value ``config`` table and a
``schema`` version table. It is read once at startup; its values overlay
the configuration file when the snapshot is resolved.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional

from ..errors import ConfigurationError


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 0

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema (
  version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS config (
  key TEXT PRIMARY KEY NOT NULL,
  value TEXT NOT NULL
);
"""

DEFAULT_VALUES = {
    'listen_address': '127.0.0.1:7878',
    'llm_model': 'qwen2.5',
    'llm_base_url': 'http://localhost:11434',
}


def open_store(db_path: str | Path) -> sqlite3.Connection:
    """
    Open the store, creating and seeding it on first use.

    Raises:
        ConfigurationError: If the database cannot be opened or is not a store
    """
    p = Path(db_path).expanduser()
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(str(p))
        con.executescript(SCHEMA_SQL)
        if con.execute("SELECT COUNT(*) FROM schema").fetchone()[0] == 0:
            _seed(con)
    except sqlite3.Error as e:
        raise ConfigurationError(f"Cannot open configuration store {p}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot create configuration store {p}: {e}") from e
    return con


def _seed(con: sqlite3.Connection) -> None:
    with con:
        con.execute("INSERT INTO schema(version) VALUES (?)", (SCHEMA_VERSION,))
        con.executemany(
            "INSERT OR IGNORE INTO config(key, value) VALUES (?, ?)",
            sorted(DEFAULT_VALUES.items()),
        )
    logger.info(f"Seeded configuration store with {len(DEFAULT_VALUES)} default values")


def schema_version(con: sqlite3.Connection) -> int:
    row = con.execute("SELECT version FROM schema LIMIT 1").fetchone()
    if row is None:
        raise ConfigurationError("Configuration store has no schema version")
    return int(row[0])


def get_value(con: sqlite3.Connection, key: str) -> Optional[str]:
    row = con.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def set_value(con: sqlite3.Connection, key: str, value: str) -> None:
    with con:
        con.execute(
            "INSERT INTO config(key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )


def read_values(db_path: str | Path) -> Dict[str, str]:
    """
    Read every key/value pair of the store as a plain mapping.

    Raises:
        ConfigurationError: If the store cannot be read or has a newer schema
    """
    con = open_store(db_path)
    try:
        version = schema_version(con)
        if version > SCHEMA_VERSION:
            raise ConfigurationError(
                f"Configuration store schema {version} is newer than supported ({SCHEMA_VERSION})"
            )
        return {k: v for k, v in con.execute("SELECT key, value FROM config")}
    except sqlite3.Error as e:
        raise ConfigurationError(f"Cannot read configuration store {db_path}: {e}") from e
    finally:
        con.close()
