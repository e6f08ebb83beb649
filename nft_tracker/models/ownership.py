"""
📁 Module: ownership.py
📌 Purpose: Ownership domain objects shared by the tracker and the read API.
🔐 These are NOT tied to the SQLite row layout; ``dl_ownership`` maps rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel


@dataclass(frozen=True)
class TransferFact:
    """One decoded ``Transfer`` log. Consumed once, never persisted as-is."""

    token_id: int
    from_address: str
    to_address: str
    contract_address: str
    tx_hash: str
    block_number: int
    log_index: int


@dataclass
class OwnershipRecord:
    """Current owner of a single token id (one record per id)."""

    token_id: int
    owner_address: str
    contract_address: str
    last_tx_hash: str
    observed_at: datetime


class OwnershipRecordOut(BaseModel):
    """
    🧾 Response schema for ``GET /nft`` and ``GET /nft/{wallet_address}``.
    """

    token_id: int                 # 🔑 Unique token identifier
    owner_address: str            # 🌐 Current owner (checksummed)
    contract_address: str         # 📜 Emitting token contract
    last_tx_hash: str             # 🔗 Transaction of the latest transfer
    observed_at: datetime         # 🕒 When the tracker applied that transfer

    @classmethod
    def from_record(cls, record: OwnershipRecord) -> "OwnershipRecordOut":
        return cls(
            token_id=record.token_id,
            owner_address=record.owner_address,
            contract_address=record.contract_address,
            last_tx_hash=record.last_tx_hash,
            observed_at=record.observed_at,
        )


__all__ = ["TransferFact", "OwnershipRecord", "OwnershipRecordOut"]
