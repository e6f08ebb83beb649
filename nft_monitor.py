"""
Root launcher for the NFT tracker.
Run me from repo root:  python nft_monitor.py
This preserves proper package imports without any sys.path shim.
"""
from nft_tracker.main import main


if __name__ == "__main__":
    raise SystemExit(main())
