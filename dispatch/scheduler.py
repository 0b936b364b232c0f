"""
Purpose: The time-based "heartbeat" of the dispatch core.
What it does:
Every policy.tick_interval_seconds:
  1. sweeps stale riders offline (releasing their orders)
  2. runs one assignment tick
A failing cycle is logged and the loop keeps beating; the next cycle retries.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import List, Optional

from riders.models import as_utc

from .engine import TickResult
from .service import FleetDispatchService

logger = logging.getLogger(__name__)


class TickScheduler:

    def __init__(self, service: FleetDispatchService, interval_seconds: Optional[float] = None):
        self.service = service
        self.interval_seconds = interval_seconds or service.policy.tick_interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_cycle(self, now: Optional[datetime] = None) -> TickResult:
        """
        One heartbeat. Eviction runs first so orders freed by dead riders
        compete in the same tick.
        """
        now = as_utc(now)
        evicted: List[str] = self.service.evict_stale(now)
        result = self.service.run_tick(now)
        if evicted:
            logger.info(f"Cycle {now.isoformat()}: evicted {evicted}")
        return result

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="dispatch-ticker", daemon=True)
        self._thread.start()
        logger.info(f"Dispatch ticker started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Dispatch ticker stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                # keep the heartbeat alive; the next cycle retries from fresh state
                logger.exception("Dispatch cycle failed")
            self._stop.wait(self.interval_seconds)
