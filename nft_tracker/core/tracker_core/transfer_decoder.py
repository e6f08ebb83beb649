"""Decode raw ``Transfer(address,address,uint256)`` logs into :class:`TransferFact`.

The tracked event declares all three parameters indexed, so the values live in
``topics[1..3]`` and the data payload is never read.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes, to_checksum_address, to_hex
from web3 import Web3

from nft_tracker.core.core_constants import TRANSFER_EVENT_ABI_PATH
from nft_tracker.core.tracker_core.errors import ConfigError, DecodeError
from nft_tracker.models.ownership import TransferFact

EXPECTED_INPUT_TYPES = ("address", "address", "uint256")
TOPIC_COUNT = 1 + len(EXPECTED_INPUT_TYPES)
TOPIC_SIZE = 32
ADDRESS_SIZE = 20


def _load_abi(abi: Path | str | Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    if isinstance(abi, (str, Path)):
        try:
            with open(abi, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read event ABI from {abi}: {exc}") from exc
    else:
        data = list(abi)

    # Brownie/Hardhat artifacts wrap the list under "abi"
    if isinstance(data, dict) and "abi" in data:
        data = data["abi"]
    if not isinstance(data, list):
        raise ConfigError("Event ABI must be a JSON array")
    return data


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"unsupported topic type {type(value).__name__}")


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise TypeError(f"unsupported integer type {type(value).__name__}")


def _hash_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    return str(value).lower()


class TransferDecoder:
    """Stateless decoder configured once from the event-shape description."""

    def __init__(
        self,
        abi: Path | str | Sequence[Mapping[str, Any]] = TRANSFER_EVENT_ABI_PATH,
        event_name: str = "Transfer",
    ) -> None:
        entries = _load_abi(abi)
        event = next(
            (e for e in entries if e.get("type") == "event" and e.get("name") == event_name),
            None,
        )
        if event is None:
            raise ConfigError(f"Event ABI does not define '{event_name}'")

        inputs = event.get("inputs") or []
        types = tuple(str(i.get("type")) for i in inputs)
        if types != EXPECTED_INPUT_TYPES:
            raise ConfigError(
                f"'{event_name}' inputs {types} do not match {EXPECTED_INPUT_TYPES}"
            )
        if not all(i.get("indexed") for i in inputs):
            raise ConfigError(f"'{event_name}' must declare every input as indexed")

        self.event_name = event_name
        self.signature = f"{event_name}({','.join(types)})"
        self.signature_hash: bytes = bytes(Web3.keccak(text=self.signature))

    @property
    def topic(self) -> str:
        """``0x``-prefixed signature hash, as used in log filters."""
        return to_hex(self.signature_hash)

    def decode(self, raw_log: Mapping[str, Any]) -> TransferFact:
        topics = raw_log.get("topics") or []
        if len(topics) != TOPIC_COUNT:
            raise DecodeError(f"expected {TOPIC_COUNT} topics, got {len(topics)}")

        try:
            topic_bytes = [_to_bytes(t) for t in topics]
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"malformed topic: {exc}") from exc

        if topic_bytes[0] != self.signature_hash:
            raise DecodeError(f"topics[0] {to_hex(topic_bytes[0])} is not {self.signature}")

        if any(len(t) != TOPIC_SIZE for t in topic_bytes[1:]):
            raise DecodeError(f"indexed topics must be {TOPIC_SIZE} bytes each")

        try:
            (token_id,) = abi_decode(["uint256"], topic_bytes[3])
        except DecodingError as exc:
            raise DecodeError(f"cannot decode token id: {exc}") from exc

        try:
            return TransferFact(
                token_id=int(token_id),
                # an address topic keeps its value in the low 20 bytes
                from_address=to_checksum_address(topic_bytes[1][-ADDRESS_SIZE:]),
                to_address=to_checksum_address(topic_bytes[2][-ADDRESS_SIZE:]),
                contract_address=to_checksum_address(raw_log["address"]),
                tx_hash=_hash_hex(raw_log["transactionHash"]),
                block_number=_to_int(raw_log["blockNumber"]),
                log_index=_to_int(raw_log["logIndex"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed log envelope: {exc!r}") from exc


__all__ = ["TransferDecoder", "EXPECTED_INPUT_TYPES"]
