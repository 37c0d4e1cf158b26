"""Online/offline detection.

Two answers with different costs:

* ``is_online()`` reads the platform network flag. It is instant and is only a
  fast path: the flag reports online while the device has no route to the
  server often enough that nothing money-related may rely on it alone.
* ``check_actual_connectivity()`` does a short HEAD round-trip to the API.
  Restoring a session, syncing before close and gating the close all go
  through it. Do not replace those calls with the flag.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from .exceptions import TransportError
from .http_client import HttpClient

logger = logging.getLogger(__name__)

PROBE_PATH = "/api/registry-sessions/current"

StatusListener = Callable[[], None]


@dataclass
class NetworkStatus:
    online: bool = True
    was_offline: bool = False
    last_online_at: datetime | None = None
    last_offline_at: datetime | None = None
    _online_listeners: list[StatusListener] = field(default_factory=list, repr=False)
    _offline_listeners: list[StatusListener] = field(default_factory=list, repr=False)
    _reconnect_listeners: list[StatusListener] = field(default_factory=list, repr=False)
    _changed: threading.Condition = field(default_factory=threading.Condition, repr=False)

    def on_online(self, listener: StatusListener) -> None:
        self._online_listeners.append(listener)

    def on_offline(self, listener: StatusListener) -> None:
        self._offline_listeners.append(listener)

    def on_reconnect(self, listener: StatusListener) -> None:
        self._reconnect_listeners.append(listener)

    def mark_online(self) -> None:
        with self._changed:
            reconnected = not self.online
            self.online = True
            self.last_online_at = datetime.now(timezone.utc)
            self._changed.notify_all()
        logger.info("network_online", extra={"reconnected": reconnected})
        self._fire(self._online_listeners)
        if reconnected and self.was_offline:
            self._fire(self._reconnect_listeners)

    def mark_offline(self) -> None:
        with self._changed:
            self.online = False
            self.was_offline = True
            self.last_offline_at = datetime.now(timezone.utc)
            self._changed.notify_all()
        logger.warning("network_offline")
        self._fire(self._offline_listeners)

    def wait_until_online(self, timeout_seconds: float) -> bool:
        with self._changed:
            return self._changed.wait_for(lambda: self.online, timeout=timeout_seconds)

    @staticmethod
    def _fire(listeners: list[StatusListener]) -> None:
        for listener in list(listeners):
            try:
                listener()
            except Exception:
                logger.exception("network_listener_failed")


@dataclass
class ConnectivityOracle:
    http: HttpClient
    status: NetworkStatus = field(default_factory=NetworkStatus)
    timeout_seconds: float | None = None

    def is_online(self) -> bool:
        return self.status.online

    def check_actual_connectivity(self) -> bool:
        """One bounded round-trip to the API; any HTTP answer counts as reachable."""
        if not self.status.online:
            return False
        timeout = self.timeout_seconds or self.http.config.probe_timeout_seconds
        try:
            status_code = self.http.probe(
                PROBE_PATH,
                timeout_seconds=timeout,
                # Cache-buster so an intermediary cannot answer for a dead server.
                params={"_cb": uuid.uuid4().hex},
            )
        except TransportError as exc:
            logger.warning("connectivity_probe_failed", extra={"error": exc.message})
            return False
        logger.info("connectivity_probe_ok", extra={"status_code": status_code})
        return True

    def wait_for_online(self, timeout_seconds: float = 30.0) -> bool:
        if self.status.online:
            return True
        return self.status.wait_until_online(timeout_seconds)
