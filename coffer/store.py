"""
Durable storage for the current snapshot.

A single-row SQLite table survives restarts so a warm process never falls back
to the hardcoded defaults.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from coffer.errors import PersistenceError
from coffer.models import Snapshot

SCHEMA = """
CREATE TABLE IF NOT EXISTS price_cache (
    id          INTEGER PRIMARY KEY CHECK(id = 1),
    gold        REAL    NOT NULL,
    silver      REAL    NOT NULL,
    usd_inr     REAL    NOT NULL,
    usd_aed     REAL    NOT NULL,
    usd_eur     REAL    NOT NULL,
    usd_gbp     REAL    NOT NULL,
    fetched_at  TEXT    NOT NULL
)
"""

UPSERT = """
INSERT INTO price_cache (id, gold, silver, usd_inr, usd_aed, usd_eur, usd_gbp, fetched_at)
VALUES (1, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    gold=excluded.gold, silver=excluded.silver,
    usd_inr=excluded.usd_inr, usd_aed=excluded.usd_aed,
    usd_eur=excluded.usd_eur, usd_gbp=excluded.usd_gbp,
    fetched_at=excluded.fetched_at
"""


class SqliteSnapshotStore:
    """Persistent snapshot storage backed by one SQLite row."""

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(SCHEMA)
        return conn

    def load_snapshot(self) -> Optional[Snapshot]:
        """Load the stored snapshot, or None if there is nothing usable."""
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT gold, silver, usd_inr, usd_aed, usd_eur, usd_gbp, fetched_at "
                    "FROM price_cache WHERE id = 1"
                ).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"could not read {self._db_path}: {e}") from e

        if row is None:
            return None
        gold, silver, usd_inr, usd_aed, usd_eur, usd_gbp, fetched_at = row
        try:
            return Snapshot(
                gold_usd=gold,
                silver_usd=silver,
                usd_inr=usd_inr,
                usd_aed=usd_aed,
                usd_eur=usd_eur,
                usd_gbp=usd_gbp,
                fetched_at=fetched_at,
            )
        except ValidationError as e:
            logging.warning(f"[prices] Ignoring invalid stored snapshot: {e}")
            return None

    def save_snapshot(self, snapshot: Snapshot) -> None:
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        UPSERT,
                        (
                            snapshot.gold_usd,
                            snapshot.silver_usd,
                            snapshot.usd_inr,
                            snapshot.usd_aed,
                            snapshot.usd_eur,
                            snapshot.usd_gbp,
                            snapshot.fetched_at.isoformat(),
                        ),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"could not write {self._db_path}: {e}") from e
