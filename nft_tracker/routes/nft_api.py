from typing import List

from eth_utils import is_address, to_checksum_address
from fastapi import APIRouter, Depends, HTTPException

from nft_tracker.core.logging import log
from nft_tracker.core.tracker_core.errors import StoreError
from nft_tracker.data.data_locker import DataLocker
from nft_tracker.deps import get_locker
from nft_tracker.models.ownership import OwnershipRecordOut

router = APIRouter(prefix="/nft", tags=["nft"])


@router.get("", response_model=List[OwnershipRecordOut])
def list_nfts(dl: DataLocker = Depends(get_locker)):
    """Every tracked token, highest token id first."""
    try:
        records = dl.ownership.find_all(descending=True)
    except StoreError as exc:
        log.error(f"Error fetching nfts: {exc}", source="nft_api")
        raise HTTPException(500, "Error fetching NFTs") from exc
    return [OwnershipRecordOut.from_record(r) for r in records]


@router.get("/{wallet_address}", response_model=List[OwnershipRecordOut])
def list_wallet_nfts(wallet_address: str, dl: DataLocker = Depends(get_locker)):
    """Tokens currently owned by ``wallet_address``, highest token id first."""
    owner = to_checksum_address(wallet_address) if is_address(wallet_address) else wallet_address
    try:
        records = dl.ownership.find_by_owner(owner, descending=True)
    except StoreError as exc:
        log.error(f"Error fetching nfts for {owner}: {exc}", source="nft_api")
        raise HTTPException(500, "Error fetching NFTs") from exc
    return [OwnershipRecordOut.from_record(r) for r in records]
