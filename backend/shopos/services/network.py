# Overview: Online/offline signal used as a sync trigger and eligibility gate.

from __future__ import annotations

import logging
import threading

import httpx


logger = logging.getLogger(__name__)


class NetworkMonitor:
    """
    Boolean connectivity status with change notifications.

    Listeners are called with the new value on transitions only, outside the
    monitor's lock. probe() checks a health URL and updates the status.
    """

    def __init__(self, initial_online: bool = True, health_url: str | None = None, probe_timeout: float = 2.0):
        self._online = bool(initial_online)
        self.health_url = health_url or None
        self.probe_timeout = probe_timeout
        self._lock = threading.Lock()
        self._listeners: list = []

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, callback) -> None:
        with self._lock:
            self._listeners.append(callback)

    def set_online(self, online: bool) -> bool:
        """Update the status. Returns True if it changed."""
        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)

        logger.info("Network is now %s", "online" if online else "offline")
        for callback in listeners:
            callback(online)
        return True

    def probe(self) -> bool:
        """Check connectivity against the health URL (no-op without one)."""
        if not self.health_url:
            return self._online
        try:
            response = httpx.get(self.health_url, timeout=self.probe_timeout)
            online = response.status_code < 500
        except httpx.HTTPError:
            online = False
        self.set_online(online)
        return online
