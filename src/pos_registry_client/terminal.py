from __future__ import annotations

import logging
import threading
from pathlib import Path

import requests

from .clients import CashTransactionsClient, OrdersClient, RegistryClient
from .config import ClientConfig, load_config
from .connectivity import ConnectivityOracle, NetworkStatus
from .events import SESSION_EXPIRED, SignalBus
from .exceptions import StoreError
from .http_client import HttpClient
from .local_store import LocalStore, SessionCache
from .models import CashierPermissions, PosUser
from .notifications import NotificationCenter
from .offline_api import OfflineAwareApi
from .registry_controller import RegistrySessionController
from .session_restore import RestoreResult, SessionRestorer
from .state import PosContext
from .sync_manager import SyncManager, SyncProgress, SyncResult

logger = logging.getLogger(__name__)


class PosTerminal:
    """One POS terminal: every component wired around a single PosContext."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: LocalStore | None = None,
        session: requests.Session | None = None,
        background_sync: bool = True,
    ) -> None:
        self.config = config or load_config()
        self.background_sync = background_sync
        self.context = PosContext()
        self.signals = SignalBus()
        self.notifications = NotificationCenter()
        self.http = HttpClient(self.config, session=session, after_response=self._after_response)
        self.store = store or LocalStore(Path(self.config.store_path) if self.config.store_path else None)
        self.cache = SessionCache(self.store)
        self.network = NetworkStatus()
        self.connectivity = ConnectivityOracle(self.http, self.network)

        self.registry_client = RegistryClient(self.http)
        self.orders_client = OrdersClient(self.http)
        self.cash_client = CashTransactionsClient(self.http)

        self.sync = SyncManager(
            store=self.store,
            connectivity=self.connectivity,
            orders=self.orders_client,
            cash_transactions=self.cash_client,
            config=self.config,
            notifications=self.notifications,
        )
        self.controller = RegistrySessionController(
            context=self.context,
            registry=self.registry_client,
            cash_transactions=self.cash_client,
            cache=self.cache,
            connectivity=self.connectivity,
            sync=self.sync,
            config=self.config,
            notifications=self.notifications,
        )
        self.api = OfflineAwareApi(
            context=self.context,
            sync=self.sync,
            controller=self.controller,
            notifications=self.notifications,
        )
        self.restorer = SessionRestorer(
            context=self.context,
            cache=self.cache,
            connectivity=self.connectivity,
            controller=self.controller,
            notifications=self.notifications,
        )

        self.signals.subscribe(SESSION_EXPIRED, self.restorer.handle_session_expired)
        self.network.on_reconnect(self._on_reconnect)
        self.sync.on_progress(self._on_sync_progress)

    def start(self) -> RestoreResult:
        return self.restorer.restore()

    def login(self, user: PosUser, access_token: str, permissions: CashierPermissions | None = None) -> None:
        self.set_access_token(access_token)
        self.restorer.remember_login(user, permissions)
        if self.connectivity.check_actual_connectivity():
            self.controller.check_current()

    def logout(self) -> None:
        self.set_access_token(None)
        self.restorer.logout()

    def set_access_token(self, token: str | None) -> None:
        for client in (self.registry_client, self.orders_client, self.cash_client):
            client.access_token = token

    def _after_response(self, response: requests.Response) -> None:
        if response.status_code == 401:
            self.signals.emit(SESSION_EXPIRED, trace_id=response.headers.get("X-Trace-ID"))

    def _on_sync_progress(self, progress: SyncProgress) -> None:
        self.context.is_syncing = progress.status == "syncing"

    def _on_reconnect(self) -> None:
        if self.background_sync:
            threading.Thread(target=self.resync, name="pos-resync", daemon=True).start()
        else:
            self.resync()

    def resync(self) -> SyncResult | None:
        """Drain the outbox, then reload the shared totals it changed."""
        if not self.connectivity.check_actual_connectivity():
            logger.info("resync_skipped", extra={"reason": "probe_failed"})
            return None
        try:
            result = self.sync.sync_all()
        except StoreError:
            logger.exception("resync_store_unavailable")
            self.notifications.error("Sync failed", "Pending operations could not be read from the device.")
            return None
        if self.context.user is not None:
            self.controller.check_current()
        return result
