# -*- coding: utf-8 -*-
"""Process bootstrap: config, store, event source, tracker thread and read API."""

from __future__ import annotations

import threading
from typing import Dict

import uvicorn

from nft_tracker.config.config_loader import load_env, load_tracker_config
from nft_tracker.core.logging import configure_console_log, log
from nft_tracker.core.tracker_core.errors import ConfigError, TrackerConnectionError, TrackerError
from nft_tracker.core.tracker_core.event_source import Web3EventSource
from nft_tracker.core.tracker_core.tracker_engine import TrackerEngine
from nft_tracker.data.data_locker import DataLocker
from nft_tracker.nft_tracker_app import create_app


def main() -> int:
    env_path = load_env()
    try:
        cfg = load_tracker_config()
    except ConfigError as exc:
        log.error(f"Configuration error: {exc}", source="main")
        return 1

    configure_console_log(cfg.debug)
    log.banner("NFT Tracker", source="main")
    log.info(f"Config loaded from {env_path or 'process environment'}", source="main", payload=cfg.describe())

    locker = DataLocker(cfg.db_path)
    source = Web3EventSource(cfg.rpc_endpoint, timeout=cfg.rpc_timeout_sec)
    try:
        source.connect()
        engine = TrackerEngine(
            source=source,
            store=locker.ownership,
            contract_addresses=cfg.contract_addresses,
            start_block=cfg.from_block,
            poll_interval_sec=cfg.fetch_interval_sec,
        )
    except (TrackerConnectionError, ConfigError) as exc:
        log.error(f"Failed to initialize transfer event tracker: {exc}", source="main")
        locker.close()
        return 1

    server = uvicorn.Server(
        uvicorn.Config(create_app(locker), host=cfg.api_host, port=cfg.api_port, log_level="info")
    )
    failure: Dict[str, Exception] = {}

    def _track() -> None:
        try:
            engine.run()
        except TrackerError as exc:
            failure["error"] = exc
            log.error(f"Failed to track events: {exc}", source="main")
            server.should_exit = True
        except Exception as exc:
            failure["error"] = exc
            log.exception("Tracker thread crashed", source="main")
            server.should_exit = True

    tracker_thread = threading.Thread(target=_track, name="nft-tracker", daemon=True)
    tracker_thread.start()
    try:
        server.run()
    finally:
        engine.stop()
        tracker_thread.join(timeout=5.0)
        locker.close()

    return 1 if failure else 0


if __name__ == "__main__":
    raise SystemExit(main())
