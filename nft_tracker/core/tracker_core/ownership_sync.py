from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from nft_tracker.core.core_constants import MAX_STORE_TOKEN_ID
from nft_tracker.core.tracker_core.errors import RangeError
from nft_tracker.data.dl_ownership import OwnershipStore
from nft_tracker.models.ownership import TransferFact


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_store_key(token_id: int, bound: int = MAX_STORE_TOKEN_ID) -> int:
    """Map a uint256 token id onto the store key; out-of-range ids are rejected."""
    if token_id < 0 or token_id > bound:
        raise RangeError(token_id, bound)
    return int(token_id)


class OwnershipSync:
    """Applies transfer facts to the store as keyed, last-write-wins upserts.

    Re-applying a fact is idempotent (with a fixed clock). Facts are not
    compared against the stored chain position, so applying an older transfer
    after a newer one leaves the older owner in place.
    """

    def __init__(
        self,
        store: OwnershipStore,
        clock: Callable[[], datetime] = _utcnow,
        max_token_id: int = MAX_STORE_TOKEN_ID,
    ) -> None:
        self.store = store
        self.clock = clock
        self.max_token_id = max_token_id

    def apply(self, fact: TransferFact) -> int:
        key = to_store_key(fact.token_id, self.max_token_id)
        self.store.upsert(
            key,
            fact.to_address,
            fact.contract_address,
            fact.tx_hash,
            self.clock(),
        )
        return key


__all__ = ["OwnershipSync", "to_store_key"]
