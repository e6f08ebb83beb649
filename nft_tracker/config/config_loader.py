from __future__ import annotations

import json
import math
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from dotenv import find_dotenv, load_dotenv
from eth_utils import is_address, to_checksum_address

from nft_tracker.config.rpc import redacted
from nft_tracker.core.core_constants import (
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_FETCH_INTERVAL_SEC,
    DEFAULT_RPC_TIMEOUT_SEC,
    ROOT_DIR,
    TRACKER_DB_PATH,
)
from nft_tracker.core.logging import log
from nft_tracker.core.tracker_core.errors import ConfigError

_ZERO_ADDRESS = "0x" + "0" * 40
_TRUTHY = {"1", "true", "yes", "on"}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass(frozen=True)
class TrackerConfig:
    rpc_endpoint: str
    contract_addresses: Tuple[str, ...]
    from_block: int
    fetch_interval_sec: float = float(DEFAULT_FETCH_INTERVAL_SEC)
    db_path: str = str(TRACKER_DB_PATH)
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    debug: bool = False

    def describe(self) -> dict:
        """Log-safe view of the configuration."""
        return {
            "rpc_endpoint": redacted(self.rpc_endpoint),
            "contracts": len(self.contract_addresses),
            "from_block": self.from_block,
            "fetch_interval_sec": self.fetch_interval_sec,
            "db_path": self.db_path,
            "api": f"{self.api_host}:{self.api_port}",
        }


def load_env() -> Optional[str]:
    """Load ``.env`` from the working directory, falling back to the repo root."""
    try:
        found = find_dotenv(usecwd=True)
    except (OSError, IOError):
        found = ""
    if not found:
        candidate = ROOT_DIR / ".env"
        found = str(candidate) if candidate.exists() else ""
    if found:
        load_dotenv(found, override=False)
        return found
    return None


def parse_duration(text: str) -> float:
    """Parse ``10m``, ``30s``, ``1h30m``, ``500ms`` or plain seconds into seconds."""
    raw = (text or "").strip().lower()
    if not raw:
        raise ValueError("empty duration")
    try:
        seconds = float(raw)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(raw):
            if match.start() != pos:
                raise ValueError(f"invalid duration {text!r}")
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(raw):
            raise ValueError(f"invalid duration {text!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {text!r}")
    return seconds


def parse_contract_addresses(raw: str) -> Tuple[str, ...]:
    """Parse the JSON array of contract addresses; invalid entries are skipped."""
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"CONTRACT_ADDRESSES is not valid JSON: {exc}") from exc
    if not isinstance(values, list):
        raise ConfigError("CONTRACT_ADDRESSES must be a JSON array of addresses")

    addresses: List[str] = []
    for value in values:
        if not isinstance(value, str) or not is_address(value) or value.lower() == _ZERO_ADDRESS:
            log.warning(f"Invalid contract address: {value!r}", source="config_loader")
            continue
        checksum = to_checksum_address(value)
        if checksum not in addresses:
            addresses.append(checksum)

    if not addresses:
        raise ConfigError("No valid contract addresses found in CONTRACT_ADDRESSES")
    return tuple(addresses)


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigError(f"{name} environment variable is not set")
    return value


def _fetch_interval(env: Mapping[str, str]) -> float:
    raw = (env.get("FETCH_INTERVAL") or "").strip()
    if not raw:
        return float(DEFAULT_FETCH_INTERVAL_SEC)
    try:
        return parse_duration(raw)
    except ValueError as exc:
        log.warning(
            f"Failed to parse FETCH_INTERVAL: {exc}, defaulting to "
            f"{DEFAULT_FETCH_INTERVAL_SEC // 60} minutes",
            source="config_loader",
        )
        return float(DEFAULT_FETCH_INTERVAL_SEC)


def load_tracker_config(env: Optional[Mapping[str, str]] = None) -> TrackerConfig:
    """Build :class:`TrackerConfig` from ``env`` (``os.environ`` by default)."""
    env = os.environ if env is None else env

    endpoint = _required(env, "ETH_RPC_ENDPOINT")
    addresses = parse_contract_addresses(_required(env, "CONTRACT_ADDRESSES"))

    from_block_raw = _required(env, "FROM_BLOCK")
    try:
        from_block = int(from_block_raw)
    except ValueError as exc:
        raise ConfigError(f"failed to parse FROM_BLOCK {from_block_raw!r}") from exc
    if from_block < 0:
        raise ConfigError(f"FROM_BLOCK must be >= 0, got {from_block}")

    try:
        api_port = int(env.get("NFT_API_PORT") or DEFAULT_API_PORT)
        rpc_timeout = float(env.get("RPC_TIMEOUT_SEC") or DEFAULT_RPC_TIMEOUT_SEC)
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc

    return TrackerConfig(
        rpc_endpoint=endpoint,
        contract_addresses=addresses,
        from_block=from_block,
        fetch_interval_sec=_fetch_interval(env),
        db_path=str(Path(env.get("NFT_TRACKER_DB_PATH") or TRACKER_DB_PATH)),
        api_host=(env.get("NFT_API_HOST") or DEFAULT_API_HOST).strip(),
        api_port=api_port,
        rpc_timeout_sec=rpc_timeout,
        debug=(env.get("NFT_TRACKER_DEBUG") or "0").strip().lower() in _TRUTHY,
    )


__all__ = [
    "TrackerConfig",
    "load_env",
    "load_tracker_config",
    "parse_contract_addresses",
    "parse_duration",
]
