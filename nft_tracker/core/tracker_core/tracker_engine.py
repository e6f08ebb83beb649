# -*- coding: utf-8 -*-
"""
Transfer tracker engine.

  • backfills ``Transfer`` logs from the configured start block to the head
    observed at startup
  • then polls ``[cursor + 1, head]`` on every tick of a coalescing ticker
  • decodes each log and upserts the new owner into the ownership store

Everything runs on the caller's thread; the ticker thread only queues ticks.
A failed fetch keeps the cursor in place so the next tick retries a wider
range. A log that fails to decode or store is reported and skipped, and the
cursor still moves past its batch.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from eth_utils import is_address, to_checksum_address

from nft_tracker.core.logging import log
from nft_tracker.core.tracker_core.errors import (
    ConfigError,
    DecodeError,
    FetchError,
    RangeError,
    SourceUnavailable,
    StoreError,
)
from nft_tracker.core.tracker_core.event_source import EventSource, RawLog
from nft_tracker.core.tracker_core.ownership_sync import OwnershipSync
from nft_tracker.core.tracker_core.query_planner import LogQuery, plan_backfill, plan_poll
from nft_tracker.core.tracker_core.tick_timer import CoalescingTicker
from nft_tracker.core.tracker_core.transfer_decoder import TransferDecoder
from nft_tracker.data.dl_ownership import OwnershipStore

_SOURCE = "TrackerEngine"
_PER_LOG_ERRORS = (DecodeError, RangeError, StoreError)


class TrackerState(str, Enum):
    INITIALIZING = "initializing"
    BACKFILLING = "backfilling"
    POLLING = "polling"
    STOPPED = "stopped"


@dataclass
class BatchResult:
    """Outcome of one backfill or poll pass over ``[from_block, to_block]``."""

    from_block: int
    to_block: int
    fetched: int = 0
    applied: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def _position(raw: RawLog) -> tuple[int, int]:
    def _num(value: Any) -> int:
        if isinstance(value, str):
            return int(value, 16) if value.startswith("0x") else int(value)
        return int(value)

    return (_num(raw.get("blockNumber", 0)), _num(raw.get("logIndex", 0)))


def _resolve_addresses(addresses: Iterable[str]) -> tuple[str, ...]:
    resolved: List[str] = []
    for addr in addresses:
        if not is_address(addr):
            raise ConfigError(f"Invalid contract address: {addr!r}")
        checksum = to_checksum_address(addr)
        if checksum not in resolved:
            resolved.append(checksum)
    if not resolved:
        raise ConfigError("At least one contract address is required")
    return tuple(resolved)


class TrackerEngine:
    """Backfill → poll state machine; the only owner of the tracking cursor."""

    def __init__(
        self,
        source: EventSource,
        store: OwnershipStore,
        contract_addresses: Sequence[str],
        start_block: int,
        poll_interval_sec: float,
        decoder: Optional[TransferDecoder] = None,
        sync: Optional[OwnershipSync] = None,
    ) -> None:
        if start_block < 0:
            raise ConfigError(f"start_block must be >= 0, got {start_block}")
        self.state = TrackerState.INITIALIZING
        self.source = source
        self.start_block = int(start_block)
        self.contract_addresses = _resolve_addresses(contract_addresses)
        self.decoder = decoder or TransferDecoder()
        self.event_topic = self.decoder.topic
        self.sync = sync or OwnershipSync(store)
        self.cancel = threading.Event()
        self.ticker = CoalescingTicker(poll_interval_sec, self.cancel)
        self.cursor: Optional[int] = None
        self.totals: Dict[str, int] = {"fetched": 0, "applied": 0, "skipped": 0, "failed_ticks": 0}
        log.info(
            f"Tracking {len(self.contract_addresses)} contract(s) for {self.decoder.signature}",
            source=_SOURCE,
        )

    # ───────────────────────── lifecycle ─────────────────────────

    def run(self) -> None:
        """Backfill, then poll until :meth:`stop` or a connection-level failure.

        :class:`SourceUnavailable` (and any backfill failure) is re-raised.
        """
        try:
            if self.cancel.is_set():
                return
            self.backfill()
            self.ticker.start()
            while self.ticker.wait():
                self.poll_once()
        except SourceUnavailable as exc:
            log.error(f"Event source lost, stopping tracker: {exc}", source=_SOURCE)
            raise
        except FetchError as exc:
            # poll_once() absorbs fetch failures, so this came from the backfill
            log.error(f"Backfill fetch failed, tracker cannot start: {exc}", source=_SOURCE)
            raise
        finally:
            self.ticker.stop()
            self.state = TrackerState.STOPPED
            log.info(f"Tracker stopped at cursor {self.cursor}", source=_SOURCE, payload=self.totals)

    def stop(self) -> None:
        self.cancel.set()
        self.ticker.wake()

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "cursor": self.cursor,
            "contracts": list(self.contract_addresses),
            "ticks_dropped": self.ticker.dropped,
            **self.totals,
        }

    # ───────────────────────── phases ─────────────────────────

    def backfill(self) -> BatchResult:
        """Process ``[start_block, head]`` and set the cursor to that head."""
        self.state = TrackerState.BACKFILLING
        head = self.source.current_head()
        log.banner(f"Backfill {self.start_block} → {head}", source=_SOURCE)
        log.start_timer("backfill")

        query = plan_backfill(self.contract_addresses, self.event_topic, self.start_block, head)
        if query is None:
            log.info(
                f"Start block {self.start_block} is above head {head}; nothing to backfill",
                source=_SOURCE,
            )
            result = BatchResult(from_block=self.start_block, to_block=head)
            self.cursor = self.start_block - 1
        else:
            result = self._apply_logs(query, self.source.fetch_logs(query))
            self.cursor = head

        log.end_timer("backfill", source=_SOURCE)
        self._report(result, "Backfill")
        self.state = TrackerState.POLLING
        return result

    def poll_once(self) -> Optional[BatchResult]:
        """One poll tick. Returns ``None`` when nothing was processed."""
        if self.cursor is None:
            raise RuntimeError("poll_once() called before backfill()")
        try:
            head = self.source.current_head()
        except FetchError as exc:
            self.totals["failed_ticks"] += 1
            log.error(f"Head lookup failed, cursor stays at {self.cursor}: {exc}", source=_SOURCE)
            return None

        query = plan_poll(self.contract_addresses, self.event_topic, self.cursor, head)
        if query is None:
            log.debug(f"No new blocks (cursor {self.cursor}, head {head})", source=_SOURCE)
            return None

        try:
            logs = self.source.fetch_logs(query)
        except FetchError as exc:
            self.totals["failed_ticks"] += 1
            log.error(
                f"Log fetch {query.from_block}..{query.to_block} failed, "
                f"cursor stays at {self.cursor}: {exc}",
                source=_SOURCE,
            )
            return None

        result = self._apply_logs(query, logs)
        self.cursor = head
        self._report(result, "Poll")
        return result

    # ───────────────────────── helpers ─────────────────────────

    def _apply_logs(self, query: LogQuery, logs: Sequence[RawLog]) -> BatchResult:
        result = BatchResult(from_block=query.from_block, to_block=query.to_block, fetched=len(logs))
        self._check_order(query, logs)

        for raw in logs:
            try:
                fact = self.decoder.decode(raw)
                self.sync.apply(fact)
            except _PER_LOG_ERRORS as exc:
                result.skipped += 1
                result.errors.append(f"{type(exc).__name__}: {exc}")
                block, index = self._safe_position(raw) or (None, None)
                log.error(
                    f"Skipping log block={block} index={index} "
                    f"tx={raw.get('transactionHash')!s}: {type(exc).__name__}: {exc}",
                    source=_SOURCE,
                )
                continue
            result.applied += 1
            log.debug(
                f"Token {fact.token_id} → {fact.to_address} (block {fact.block_number})",
                source=_SOURCE,
            )

        self.totals["fetched"] += result.fetched
        self.totals["applied"] += result.applied
        self.totals["skipped"] += result.skipped
        return result

    def _check_order(self, query: LogQuery, logs: Sequence[RawLog]) -> None:
        previous: Optional[tuple[int, int]] = None
        for raw in logs:
            pos = self._safe_position(raw)
            if pos is None:
                continue
            if not query.from_block <= pos[0] <= query.to_block:
                log.warning(
                    f"Log at block {pos[0]} outside requested range "
                    f"{query.from_block}..{query.to_block}",
                    source=_SOURCE,
                )
            if previous is not None and pos < previous:
                log.warning(
                    f"Source returned logs out of order ({previous} before {pos}); "
                    "applying in the order given",
                    source=_SOURCE,
                )
                return
            previous = pos

    @staticmethod
    def _safe_position(raw: RawLog) -> Optional[tuple[int, int]]:
        try:
            return _position(raw)
        except (TypeError, ValueError, AttributeError):
            return None

    def _report(self, result: BatchResult, label: str) -> None:
        msg = (
            f"{label} {result.from_block}..{result.to_block}: "
            f"{result.fetched} fetched, {result.applied} applied, {result.skipped} skipped"
        )
        if result.skipped:
            log.warning(msg, source=_SOURCE)
        else:
            log.success(msg, source=_SOURCE)


__all__ = ["TrackerEngine", "TrackerState", "BatchResult"]
