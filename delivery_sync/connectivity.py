# ==============================================
# ConnectivityMonitor
# ==============================================
#
# PURPOSE:
#   Boolean online/offline signal plus an edge event on every
#   transition. The orchestrator listens for the offline → online
#   edge to drain the queue and re-sync.
#
# CLASS: ConnectivityMonitor
# --------------------------
#   - is_online() -> bool
#   - set_online(online) -> bool
#       Update the state; listeners fire only on a real transition.
#       Returns True if the state changed.
#   - add_listener(callback) / remove_listener(callback)
#       callback(online: bool) is called after the state changed.
#   - probe() -> bool
#       HEAD request to the probe URL; the result is fed to set_online.
#
# ==============================================

import logging
import threading
from typing import Callable, List, Optional

import requests

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """
    Thread-safe connectivity state with transition listeners.
    """

    def __init__(
        self,
        online: bool = True,
        probe_url: str = "https://docs.google.com/",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None
    ):
        self._online = online
        self.probe_url = probe_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def set_online(self, online: bool) -> bool:
        with self._lock:
            if self._online == online:
                return False
            self._online = online
            listeners = list(self._listeners)

        logger.info("%s Connectivity %s", "✓" if online else "⚠", "restored" if online else "lost")
        for listener in listeners:
            try:
                listener(online)
            except Exception as e:
                logger.error("✗ Connectivity listener failed: %s", e, exc_info=True)
        return True

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def probe(self) -> bool:
        """
        Check reachability of the probe URL and update the state.

        Any HTTP response counts as online; only transport errors
        count as offline.
        """
        try:
            self.session.head(self.probe_url, timeout=self.timeout, allow_redirects=True)
            online = True
        except requests.RequestException as e:
            logger.debug("Connectivity probe failed: %s", e)
            online = False
        self.set_online(online)
        return online
