from __future__ import annotations

import threading
from typing import Optional

from nft_tracker.core.logging import log


class CoalescingTicker:
    """Fixed-interval ticker holding at most one pending tick.

    A background thread calls :meth:`fire` every ``interval_sec``. If the
    consumer is still busy with the previous tick, the new one is kept as the
    single pending tick and any further ticks are dropped until it is taken.
    """

    def __init__(self, interval_sec: float, cancel: Optional[threading.Event] = None) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.interval_sec = float(interval_sec)
        self.cancel = cancel or threading.Event()
        self.fired = 0
        self.dropped = 0
        self._pending = False
        self._cond = threading.Condition()
        self._thr: Optional[threading.Thread] = None

    @property
    def pending(self) -> bool:
        with self._cond:
            return self._pending

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._thr = threading.Thread(target=self._run, name="nft-ticker", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self.cancel.set()
        self.wake()
        if self._thr:
            self._thr.join(timeout=1.0)

    def fire(self) -> bool:
        """Queue a tick; returns ``False`` when it was coalesced away."""
        with self._cond:
            self.fired += 1
            if self._pending:
                self.dropped += 1
                log.debug("Tick dropped, previous tick still pending", source="CoalescingTicker")
                return False
            self._pending = True
            self._cond.notify_all()
            return True

    def wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a tick is pending and consume it.

        Returns ``False`` on cancellation, or when ``timeout`` elapses first.
        """
        with self._cond:
            if not self._cond.wait_for(
                lambda: self._pending or self.cancel.is_set(), timeout=timeout
            ):
                return False
            if self.cancel.is_set():
                return False
            self._pending = False
            return True

    def _run(self) -> None:
        while not self.cancel.wait(self.interval_sec):
            self.fire()
        # release a consumer blocked in wait()
        self.wake()


__all__ = ["CoalescingTicker"]
