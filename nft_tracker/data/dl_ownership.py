# dl_ownership.py
"""
Module: DLOwnershipManager
Description:
    Stores the current owner of every tracked token id. One row per token id;
    writes are a single insert-or-replace statement so readers never observe a
    half-written record. Ordering is last-write-wins: the stored row carries no
    block position, so an older transfer applied late overwrites a newer one.

Dependencies:
    - DatabaseManager from database.py
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from nft_tracker.core.logging import log
from nft_tracker.core.tracker_core.errors import StoreError
from nft_tracker.models.ownership import OwnershipRecord


class OwnershipStore(Protocol):
    def upsert(
        self,
        token_id: int,
        owner_address: str,
        contract_address: str,
        tx_hash: str,
        observed_at: datetime,
    ) -> None: ...

    def find_all(self, descending: bool = True) -> List[OwnershipRecord]: ...

    def find_by_owner(self, owner_address: str, descending: bool = True) -> List[OwnershipRecord]: ...


def _row_to_record(row: sqlite3.Row) -> OwnershipRecord:
    observed = datetime.fromisoformat(row["observed_at"])
    if observed.tzinfo is None:
        observed = observed.replace(tzinfo=timezone.utc)
    return OwnershipRecord(
        token_id=int(row["token_id"]),
        owner_address=row["owner_address"],
        contract_address=row["contract_address"],
        last_tx_hash=row["last_tx_hash"],
        observed_at=observed,
    )


class DLOwnershipManager:
    def __init__(self, db):
        self.db = db
        self.ensure_table()
        log.debug("DLOwnershipManager initialized.", source="DLOwnershipManager")

    def ensure_table(self) -> None:
        try:
            with self.db.lock:
                cursor = self.db.get_cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ownership (
                        token_id INTEGER PRIMARY KEY,
                        owner_address TEXT NOT NULL,
                        contract_address TEXT NOT NULL,
                        last_tx_hash TEXT NOT NULL,
                        observed_at TEXT NOT NULL
                    )
                    """
                )
                cursor.execute(
                    "CREATE INDEX IF NOT EXISTS idx_ownership_owner ON ownership (owner_address)"
                )
                self.db.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot create ownership table: {exc}") from exc
        log.debug("ownership table ensured", source="DLOwnershipManager")

    def upsert(
        self,
        token_id: int,
        owner_address: str,
        contract_address: str,
        tx_hash: str,
        observed_at: datetime,
    ) -> None:
        try:
            self.db.execute(
                """
                INSERT INTO ownership (
                    token_id, owner_address, contract_address, last_tx_hash, observed_at
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(token_id) DO UPDATE SET
                    owner_address = excluded.owner_address,
                    contract_address = excluded.contract_address,
                    last_tx_hash = excluded.last_tx_hash,
                    observed_at = excluded.observed_at
                """,
                (token_id, owner_address, contract_address, tx_hash, observed_at.isoformat()),
            )
        except (sqlite3.Error, OverflowError) as exc:
            raise StoreError(f"Upsert failed for token {token_id}: {exc}") from exc
        log.debug(f"Token {token_id} → {owner_address}", source="DLOwnershipManager")

    def get(self, token_id: int) -> Optional[OwnershipRecord]:
        rows = self._select("WHERE token_id = ?", (token_id,), True)
        return rows[0] if rows else None

    def find_all(self, descending: bool = True) -> List[OwnershipRecord]:
        return self._select("", (), descending)

    def find_by_owner(self, owner_address: str, descending: bool = True) -> List[OwnershipRecord]:
        return self._select("WHERE owner_address = ?", (owner_address,), descending)

    def count(self) -> int:
        try:
            rows = self.db.fetch_all("SELECT COUNT(*) AS n FROM ownership")
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot count ownership rows: {exc}") from exc
        return int(rows[0]["n"])

    def _select(self, where: str, params: tuple, descending: bool) -> List[OwnershipRecord]:
        order = "DESC" if descending else "ASC"
        try:
            rows = self.db.fetch_all(
                f"""
                SELECT token_id, owner_address, contract_address, last_tx_hash, observed_at
                FROM ownership {where}
                ORDER BY token_id {order}
                """,
                params,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Ownership query failed: {exc}") from exc
        return [_row_to_record(r) for r in rows]


__all__ = ["DLOwnershipManager", "OwnershipStore"]
