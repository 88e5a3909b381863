from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Protocol

LOGGER = logging.getLogger(__name__)

DEFAULT_PROBE_HOST = "1.1.1.1"
DEFAULT_PROBE_PORT = 53
DEFAULT_PROBE_TIMEOUT_SECONDS = 3.0

ConnectivityCallback = Callable[[bool], None]


class ConnectivitySource(Protocol):
    def is_reachable(self) -> bool:
        """Return whether a network is currently reachable."""

    def subscribe(self, callback: ConnectivityCallback) -> None:
        ...

    def unsubscribe(self, callback: ConnectivityCallback) -> None:
        ...


class SocketProbeConnectivitySource:
    """Reachability by opening a TCP connection to a well-known host."""

    def __init__(
        self,
        host: str = DEFAULT_PROBE_HOST,
        port: int = DEFAULT_PROBE_PORT,
        *,
        timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._callbacks: list[ConnectivityCallback] = []
        self._lock = threading.Lock()
        self._last_state: bool | None = None

    def is_reachable(self) -> bool:
        try:
            with socket.create_connection((self._host, self._port), timeout=self._timeout):
                return True
        except OSError:
            return False

    def subscribe(self, callback: ConnectivityCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unsubscribe(self, callback: ConnectivityCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def probe(self) -> bool:
        """Re-check reachability and notify subscribers when it changed."""
        reachable = self.is_reachable()
        with self._lock:
            changed = reachable != self._last_state
            self._last_state = reachable
            callbacks = list(self._callbacks)

        if changed:
            LOGGER.info("Network reachability changed: connected=%s", reachable)
            for callback in callbacks:
                callback(reachable)
        return reachable


class ConnectivityGate:
    """Latest known reachability, consulted by the poll cycle without blocking."""

    def __init__(self, *, connected: bool = False) -> None:
        self._connected = connected
        self._source: ConnectivitySource | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        self._connected = bool(connected)

    def register(self, source: ConnectivitySource) -> None:
        if self._source is source:
            return
        self.unregister()
        self._source = source
        source.subscribe(self.set_connected)
        self.set_connected(source.is_reachable())

    def unregister(self) -> None:
        source = self._source
        if source is None:
            return
        self._source = None
        source.unsubscribe(self.set_connected)
