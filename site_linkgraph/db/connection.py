"""
SQLite connection management for catalog snapshots.

Provides a context manager ``get_connection()`` that:
  - Opens the catalog read-only by default (the build never writes to it).
  - Sets a busy timeout to handle lock contention with a live exporter.
  - Uses ``sqlite3.Row`` factory so rows behave like dicts.
  - Commits on clean exit (writable mode only), rolls back on exception.

Usage::

    from site_linkgraph.db.connection import get_connection

    with get_connection("data/catalog/whops.db") as conn:
        rows = conn.execute('SELECT * FROM "Whop"').fetchall()
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    read_only: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Args:
        db_path: Path to the SQLite database file. Use ``":memory:"`` for
            in-memory databases (useful in tests; always writable).
        read_only: Open with ``mode=ro`` so a build can never modify the
            catalog.  The file must already exist.
        busy_timeout_ms: Milliseconds to wait when the database is locked
            before raising ``OperationalError``.

    Yields:
        An open, configured ``sqlite3.Connection``.

    Raises:
        FileNotFoundError: If ``read_only`` and the file does not exist.
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path == ":memory:":
        conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
        read_only = False
    elif read_only:
        db_file = Path(db_path)
        if not db_file.exists():
            raise FileNotFoundError(f"Catalog database not found: {db_file}")
        conn = sqlite3.connect(
            f"{db_file.resolve().as_uri()}?mode=ro",
            uri=True,
            timeout=busy_timeout_ms / 1000,
        )
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)

    conn.row_factory = sqlite3.Row

    try:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        yield conn
        if not read_only:
            conn.commit()

    except Exception:
        if not read_only:
            conn.rollback()
        raise

    finally:
        conn.close()
