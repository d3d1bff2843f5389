"""SQLite cache for Places API responses."""
from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def make_request_cache_key(url: str, field_mask: str, body: Dict[str, Any]) -> str:
    payload = json.dumps(body, sort_keys=True, separators=(",", ":"))
    raw = f"{url}|{field_mask}|{payload}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


class Cache:
    """Response cache with explicit transaction control.

    Writes stay pending until commit(); rollback() drops everything written
    since the last commit, so a failed area search leaves nothing behind.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._pending_writes = 0
        self._configure_conn()
        self._init_db()

    def _configure_conn(self) -> None:
        cur = self.conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.fetchone()
        except sqlite3.DatabaseError as exc:
            logger.debug("WAL journal mode unavailable for %s: %s", self.db_path, exc)
        cur.execute("PRAGMA synchronous=NORMAL")

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS places_search_cache (
                key TEXT PRIMARY KEY,
                response_json TEXT,
                created_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS place_details_cache (
                place_id TEXT PRIMARY KEY,
                response_json TEXT,
                created_at TEXT
            )
            """
        )
        self.conn.commit()

    @property
    def pending_writes(self) -> int:
        return self._pending_writes

    def commit(self) -> None:
        if self._pending_writes:
            self.conn.commit()
            self._pending_writes = 0

    def rollback(self) -> None:
        if self._pending_writes:
            logger.info("Discarding %s uncommitted cache write(s)", self._pending_writes)
        self.conn.rollback()
        self._pending_writes = 0

    def close(self) -> None:
        self.commit()
        self.conn.close()

    def get_search_cache(self, key: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT response_json FROM places_search_cache WHERE key = ?", (key,))
        row = cur.fetchone()
        if not row:
            return None
        return json.loads(row["response_json"])

    def set_search_cache(self, key: str, response: Dict[str, Any]) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT OR REPLACE INTO places_search_cache (key, response_json, created_at)
            VALUES (?, ?, ?)
            """,
            (key, json.dumps(response), utc_now_iso()),
        )
        self._pending_writes += 1

    def get_details_cache(self, place_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT response_json FROM place_details_cache WHERE place_id = ?", (place_id,))
        row = cur.fetchone()
        if not row:
            return None
        return json.loads(row["response_json"])

    def set_details_cache(self, place_id: str, response: Dict[str, Any]) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT OR REPLACE INTO place_details_cache (place_id, response_json, created_at)
            VALUES (?, ?, ?)
            """,
            (place_id, json.dumps(response), utc_now_iso()),
        )
        self._pending_writes += 1
