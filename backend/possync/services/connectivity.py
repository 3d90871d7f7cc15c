# Overview: Reachability signal wrapped into a single is_online() query.

from __future__ import annotations

import logging
import threading
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityProbe:
    """
    Base probe. Subclasses decide how the boolean is obtained; this class
    owns the push side: listeners are called with the new state whenever
    it changes.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._last_state: bool | None = None
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        online = self._check()
        self._record(online)
        return online

    def _check(self) -> bool:
        raise NotImplementedError

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _record(self, online: bool) -> None:
        with self._lock:
            previous = self._last_state
            self._last_state = online
        if previous is None or previous == online:
            return
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener failed")


class StaticConnectivityProbe(ConnectivityProbe):
    """Manually switched probe for forced-offline mode and tests."""

    def __init__(self, online: bool = True) -> None:
        super().__init__()
        self._online = online
        self._last_state = online

    def _check(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online
        self._record(online)


class HttpConnectivityProbe(ConnectivityProbe):
    """
    Polls a health URL. Any response below 500 counts as reachable; a
    transport error or timeout counts as down.
    """

    def __init__(self, url: str, *, timeout: float = 3.0, client: httpx.Client | None = None) -> None:
        super().__init__()
        self.url = url
        self.timeout = timeout
        self._client = client

    def _check(self) -> bool:
        try:
            if self._client is not None:
                response = self._client.head(self.url, timeout=self.timeout)
            else:
                response = httpx.head(self.url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.debug("Connectivity check against %s failed: %s", self.url, exc)
            return False
        return response.status_code < 500


def build_probe(config) -> ConnectivityProbe:
    if config.get("FORCE_OFFLINE"):
        return StaticConnectivityProbe(online=False)
    url = config.get("CONNECTIVITY_CHECK_URL")
    if url:
        return HttpConnectivityProbe(url, timeout=config.get("CONNECTIVITY_TIMEOUT", 3.0))
    # No probe target configured: the remote database is local, treat as reachable
    return StaticConnectivityProbe(online=True)
