"""SQLite store for the user-managed service link list.

One row per linked service (name, url, icon, category). Read by the
REST API and by the "services" channel fetcher, which run on different
threads, so each thread gets its own connection. Writes go through a
single lock. WAL mode lets readers proceed while a write is in flight.
"""

import logging
import os
import sqlite3
import threading
from typing import Dict, List, Optional

from config import DEFAULT_SERVICES

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS services (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        icon TEXT,
        category TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
"""


class ServiceStore:
    """Thread-safe CRUD access to the services table."""

    def __init__(self, db_path: str = "./data/homelab.db", seed: bool = True):
        self._db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()
        # ":memory:" databases are per-connection, so they share one
        self._shared: Optional[sqlite3.Connection] = None

        if db_path != ":memory:":
            db_dir = os.path.dirname(db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        conn = self._get_conn()
        with self._write_lock:
            conn.executescript(SCHEMA)
            conn.commit()
        if seed:
            self._seed_defaults()
        logger.info("ServiceStore ready (db=%s)", db_path)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection (SQLite isn't thread-safe)."""
        if self._db_path == ":memory:":
            if self._shared is None:
                self._shared = sqlite3.connect(":memory:", check_same_thread=False)
                self._shared.row_factory = sqlite3.Row
            return self._shared

        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(self._db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
        return self._local.conn

    def _seed_defaults(self):
        """Insert the starter links into an empty table."""
        conn = self._get_conn()
        with self._write_lock:
            count = conn.execute("SELECT COUNT(*) FROM services").fetchone()[0]
            if count:
                return
            conn.executemany(
                "INSERT INTO services (name, url, icon, category) VALUES (?, ?, ?, ?)",
                [(s["name"], s["url"], s["icon"], s["category"]) for s in DEFAULT_SERVICES],
            )
            conn.commit()
        logger.info("Seeded %d default services", len(DEFAULT_SERVICES))

    def get_all(self) -> List[Dict]:
        rows = self._get_conn().execute(
            "SELECT * FROM services ORDER BY category, name"
        ).fetchall()
        return [dict(r) for r in rows]

    def get(self, service_id) -> Optional[Dict]:
        row = self._get_conn().execute(
            "SELECT * FROM services WHERE id = ?", (service_id,)
        ).fetchone()
        return dict(row) if row else None

    def create(self, name: str, url: str, icon: str = "", category: str = "") -> Dict:
        conn = self._get_conn()
        with self._write_lock:
            cur = conn.execute(
                "INSERT INTO services (name, url, icon, category) VALUES (?, ?, ?, ?)",
                (name, url, icon or "", category or "Other"),
            )
            conn.commit()
        return self.get(cur.lastrowid)

    def update(self, service_id, name: str, url: str, icon: str = "", category: str = "") -> Optional[Dict]:
        conn = self._get_conn()
        with self._write_lock:
            conn.execute("""
                UPDATE services
                SET name = ?, url = ?, icon = ?, category = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (name, url, icon or "", category or "Other", service_id))
            conn.commit()
        return self.get(service_id)

    def delete(self, service_id) -> bool:
        conn = self._get_conn()
        with self._write_lock:
            cur = conn.execute("DELETE FROM services WHERE id = ?", (service_id,))
            conn.commit()
        return cur.rowcount > 0

    def close(self):
        """Close this thread's connection."""
        conn = self._shared if self._db_path == ":memory:" else getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
        self._shared = None
        self._local.conn = None
