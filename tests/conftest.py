from datetime import datetime, timezone

import pytest
from eth_utils import to_checksum_address
from web3 import Web3

from nft_tracker.data.data_locker import DataLocker

TRANSFER_TOPIC = bytes(Web3.keccak(text="Transfer(address,address,uint256)"))
CONTRACT = to_checksum_address("0x" + "ab" * 20)
ZERO = "0x" + "00" * 20
OWNER_X = to_checksum_address("0x" + "1a" * 20)
OWNER_Y = to_checksum_address("0x" + "2b" * 20)
OWNER_Z = to_checksum_address("0x" + "3c" * 20)
FIXED_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def address_topic(address: str) -> bytes:
    return b"\x00" * 12 + bytes.fromhex(address[2:])


def make_transfer_log(
    block: int,
    token_id: int,
    to: str,
    sender: str = ZERO,
    log_index: int = 0,
    contract: str = CONTRACT,
    tx_hash: bytes = None,
) -> dict:
    """Raw log shaped like web3's ``eth_getLogs`` result."""
    return {
        "address": contract,
        "topics": [
            TRANSFER_TOPIC,
            address_topic(sender),
            address_topic(to),
            token_id.to_bytes(32, "big"),
        ],
        "data": b"",
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": tx_hash or block.to_bytes(2, "big") * 16,
    }


class FakeEventSource:
    """In-memory event source. ``heads`` is consumed one entry per lookup."""

    def __init__(self, heads, logs=None):
        self.heads = list(heads)
        self.logs = list(logs or [])
        self.queries = []
        self.fetch_errors = []
        self.on_fetch = None
        self.in_flight = 0
        self.max_in_flight = 0

    def current_head(self):
        head = self.heads.pop(0) if len(self.heads) > 1 else self.heads[0]
        if isinstance(head, Exception):
            raise head
        return head

    def fetch_logs(self, query):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.queries.append(query)
            if self.fetch_errors:
                err = self.fetch_errors.pop(0)
                if err is not None:
                    raise err
            if self.on_fetch:
                self.on_fetch(len(self.queries))
            return [
                log
                for log in sorted(self.logs, key=lambda l: (l["blockNumber"], l["logIndex"]))
                if query.from_block <= log["blockNumber"] <= query.to_block
            ]
        finally:
            self.in_flight -= 1


@pytest.fixture(scope="function")
def dl_tmp(tmp_path):
    dl = DataLocker(str(tmp_path / "test.db"))
    yield dl
    dl.close()
