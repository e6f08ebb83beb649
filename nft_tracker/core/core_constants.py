from pathlib import Path
import os

# resolve nft_tracker/ from this file location (…/nft_tracker/core/core_constants.py -> nft_tracker/)
_PACKAGE_DIR = Path(__file__).resolve().parents[1]

BASE_DIR = _PACKAGE_DIR
ROOT_DIR = _PACKAGE_DIR.parent
TRACKER_DB_PATH = Path(os.getenv("NFT_TRACKER_DB_PATH") or str(BASE_DIR / "nft_tracker.db"))
TRANSFER_EVENT_ABI_PATH = BASE_DIR / "core" / "tracker_core" / "abi" / "transfer_event.json"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Poll cadence used when FETCH_INTERVAL is unset or cannot be parsed.
DEFAULT_FETCH_INTERVAL_SEC = 10 * 60
DEFAULT_RPC_TIMEOUT_SEC = 30.0
DEFAULT_API_HOST = "localhost"
DEFAULT_API_PORT = 3000

# SQLite INTEGER is a signed 64-bit value; token ids beyond it are rejected.
MAX_STORE_TOKEN_ID = 2**63 - 1

__all__ = [
    "BASE_DIR",
    "ROOT_DIR",
    "TRACKER_DB_PATH",
    "TRANSFER_EVENT_ABI_PATH",
    "LOG_DATE_FORMAT",
    "DEFAULT_FETCH_INTERVAL_SEC",
    "DEFAULT_RPC_TIMEOUT_SEC",
    "DEFAULT_API_HOST",
    "DEFAULT_API_PORT",
    "MAX_STORE_TOKEN_ID",
]
