# database.py
"""
Module: DatabaseManager
Description:
    Thin wrapper around a single SQLite connection shared by the tracker
    thread and the read API. Statements run under one lock so each upsert is
    applied and committed as a unit.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, List, Optional

from nft_tracker.core.logging import log


class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None
        self.closed = False
        self.lock = threading.RLock()
        self.connect()

    def connect(self) -> sqlite3.Connection:
        if self.closed:
            raise sqlite3.ProgrammingError(f"database {self.db_path} is closed")
        if self.conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            log.debug(f"SQLite connected: {self.db_path}", source="DatabaseManager")
        return self.conn

    def get_cursor(self) -> sqlite3.Cursor:
        return self.connect().cursor()

    def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run one write statement and commit it; returns the affected row count."""
        with self.lock:
            cursor = self.get_cursor()
            cursor.execute(sql, tuple(params))
            self.conn.commit()
            return cursor.rowcount

    def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with self.lock:
            cursor = self.get_cursor()
            cursor.execute(sql, tuple(params))
            return cursor.fetchall()

    def commit(self) -> None:
        with self.lock:
            if self.conn is not None:
                self.conn.commit()

    def close(self) -> None:
        with self.lock:
            self.closed = True
            if self.conn is not None:
                self.conn.close()
                self.conn = None
                log.debug(f"SQLite closed: {self.db_path}", source="DatabaseManager")
