"""Event source adapters: chain head lookup and ``eth_getLogs`` over JSON-RPC."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from nft_tracker.config.rpc import redacted
from nft_tracker.core.core_constants import DEFAULT_RPC_TIMEOUT_SEC
from nft_tracker.core.logging import log
from nft_tracker.core.tracker_core.errors import FetchError, SourceUnavailable
from nft_tracker.core.tracker_core.query_planner import LogQuery

RawLog = Mapping[str, Any]

_CALL_ERRORS = (RequestException, Web3Exception, ValueError, OSError)


class EventSource(Protocol):
    """What the tracker needs from a chain node.

    ``fetch_logs`` must return logs ascending by block number, then log index.
    Both calls raise :class:`SourceUnavailable` when the node cannot be reached
    at all and :class:`FetchError` for any other failed call.
    """

    def current_head(self) -> int: ...

    def fetch_logs(self, query: LogQuery) -> List[RawLog]: ...


class Web3EventSource:
    """:class:`EventSource` backed by ``web3.Web3.HTTPProvider``."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_RPC_TIMEOUT_SEC,
        w3: Optional[Web3] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._w3 = w3 or Web3(
            Web3.HTTPProvider(endpoint, request_kwargs={"timeout": timeout})
        )

    def connect(self) -> "Web3EventSource":
        """Verify the node answers; raises :class:`SourceUnavailable` otherwise."""
        if not self._is_connected():
            raise SourceUnavailable(f"Cannot reach event source {redacted(self.endpoint)}")
        log.info(f"Connected to event source {redacted(self.endpoint)}", source="Web3EventSource")
        return self

    def current_head(self) -> int:
        try:
            return int(self._w3.eth.block_number)
        except _CALL_ERRORS as exc:
            raise self._classify("eth_blockNumber", exc) from exc

    def fetch_logs(self, query: LogQuery) -> List[RawLog]:
        try:
            logs = self._w3.eth.get_logs(query.as_filter_params())
        except _CALL_ERRORS as exc:
            raise self._classify(
                f"eth_getLogs[{query.from_block}..{query.to_block}]", exc
            ) from exc
        log.debug(
            f"eth_getLogs[{query.from_block}..{query.to_block}] returned {len(logs)} logs",
            source="Web3EventSource",
        )
        return list(logs)

    # ------------------------------------------------------------------
    def _is_connected(self) -> bool:
        try:
            return bool(self._w3.is_connected())
        except _CALL_ERRORS:
            return False

    def _classify(self, call: str, exc: Exception) -> Exception:
        if self._is_connected():
            return FetchError(f"{call} failed: {exc}")
        return SourceUnavailable(
            f"{call} failed and {redacted(self.endpoint)} is unreachable: {exc}"
        )


__all__ = ["EventSource", "Web3EventSource", "RawLog"]
