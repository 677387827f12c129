# Overview: Periodic and event-driven triggers for the sync engine.

"""
Sync Scheduler

Triggers a drain:
- every interval_seconds while operations are pending (daemon thread)
- on every offline -> online transition of the network monitor

Drains requested by the network listener go through the background runner so
the thread flipping the network status is never blocked by remote calls.
"""

from __future__ import annotations

import logging
import threading


logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, engine, queue, network, interval_seconds: float = 30.0, background=None):
        self.engine = engine
        self.queue = queue
        self.network = network
        self.interval_seconds = interval_seconds
        self.background = background
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        network.add_listener(self._on_network_change)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self):
        """One timer firing: drain only when there is something to push."""
        if not self.queue.has_pending() or not self.network.is_online:
            return None
        return self.engine.drain()

    def _on_network_change(self, online: bool) -> None:
        if not online:
            return
        logger.info("Back online; requesting sync drain")
        if self.background is not None:
            self.background.submit("online drain", self.engine.drain)
        else:
            self.engine.drain()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduled sync drain failed")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="shopos-sync", daemon=True)
        self._thread.start()
        logger.info("Sync scheduler started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
