from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class LogQuery:
    """Immutable ``eth_getLogs`` request: addresses, topic filter and block range."""

    addresses: Tuple[str, ...]
    topics: Tuple[Tuple[str, ...], ...]
    from_block: int
    to_block: int

    def as_filter_params(self) -> Dict[str, Any]:
        return {
            "address": list(self.addresses),
            "topics": [list(t) for t in self.topics],
            "fromBlock": self.from_block,
            "toBlock": self.to_block,
        }

    @property
    def span(self) -> int:
        return self.to_block - self.from_block + 1


def plan_query(
    contract_addresses: Iterable[str],
    event_topic: str,
    from_block: int,
    to_block: int,
) -> Optional[LogQuery]:
    """Return the query for ``[from_block, to_block]``, or ``None`` for an empty range."""
    if from_block > to_block:
        return None
    addresses: List[str] = list(dict.fromkeys(contract_addresses))
    return LogQuery(
        addresses=tuple(addresses),
        topics=((event_topic,),),
        from_block=int(from_block),
        to_block=int(to_block),
    )


def plan_backfill(
    contract_addresses: Iterable[str], event_topic: str, start_block: int, head: int
) -> Optional[LogQuery]:
    return plan_query(contract_addresses, event_topic, start_block, head)


def plan_poll(
    contract_addresses: Iterable[str], event_topic: str, cursor: int, head: int
) -> Optional[LogQuery]:
    return plan_query(contract_addresses, event_topic, cursor + 1, head)


__all__ = ["LogQuery", "plan_query", "plan_backfill", "plan_poll"]
