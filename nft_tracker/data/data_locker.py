# data_locker.py
"""
Module: DataLocker
Description:
    Explicit store handle composing the DL*Manager modules. Built once by the
    launcher and handed to both the tracker engine and the read API; there is
    no module-level instance.

Dependencies:
    - DatabaseManager (SQLite wrapper)
    - DLOwnershipManager
"""

from __future__ import annotations

from nft_tracker.core.logging import log
from nft_tracker.data.database import DatabaseManager
from nft_tracker.data.dl_ownership import DLOwnershipManager


class DataLocker:
    def __init__(self, db_path: str):
        self.db = DatabaseManager(db_path)
        self.ownership = DLOwnershipManager(self.db)
        log.debug("All DL managers bootstrapped successfully.", source="DataLocker")

    @property
    def db_path(self) -> str:
        return self.db.db_path

    def close(self) -> None:
        self.db.close()


__all__ = ["DataLocker"]
