"""Start-up restoration of the terminal from the on-device cache.

Order matters: cache, then the platform flag, then the connectivity probe,
then the server. A restart during an outage must show the POS from cache
without waiting on a network timeout, and only a missing cached user sends
the operator to login.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PayloadValidationError

from .connectivity import ConnectivityOracle
from .exceptions import AuthError
from .local_store import SessionCache
from .models import CashierPermissions, PosUser
from .models_registry import RegistrySession
from .notifications import NotificationCenter
from .registry_controller import CheckSource, RegistrySessionController
from .state import PosContext, Route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreResult:
    route: Route
    offline_mode: bool = False
    user: PosUser | None = None
    registry_session: RegistrySession | None = None
    permissions: CashierPermissions | None = None
    server_verified: bool = False


def _parse(model: type, value: dict[str, Any] | None, key: str) -> Any | None:
    if not value:
        return None
    try:
        return model.model_validate(value)
    except PayloadValidationError:
        logger.warning("session_cache_entry_invalid", extra={"key": key})
        return None


@dataclass
class SessionRestorer:
    context: PosContext
    cache: SessionCache
    connectivity: ConnectivityOracle
    controller: RegistrySessionController
    notifications: NotificationCenter

    def restore(self) -> RestoreResult:
        user = _parse(PosUser, self.cache.get_user(), "user")
        session = _parse(RegistrySession, self.cache.get_registry_session(), "registry_session")
        permissions = _parse(CashierPermissions, self.cache.get_permissions(), "permissions")

        if user is None:
            self.context.reset()
            logger.info("session_restore_login_required")
            return RestoreResult(route=Route.LOGIN)

        # Show the POS straight away; the checks below only refine it.
        self.context.user = user
        self.context.permissions = permissions
        self.context.route = Route.POS
        if session is not None:
            self.context.attach_session(session)
        else:
            self.context.detach_session()

        if not self.connectivity.is_online():
            return self._offline(user, permissions, "network_flag_down")

        # The flag lies often enough that it is not trusted on its own.
        if not self.connectivity.check_actual_connectivity():
            return self._offline(user, permissions, "probe_failed")

        check = self.controller.check_current()
        if isinstance(check.error, AuthError) or self.context.user is None:
            self.context.reset()
            logger.info("session_restore_login_required", extra={"cause": "unauthorized"})
            return RestoreResult(route=Route.LOGIN)
        if check.offline:
            return self._offline(user, permissions, "registry_check_failed")

        self.context.offline_mode = False
        logger.info(
            "session_restored",
            extra={"user_id": user.id, "source": check.source.value, "session_id": check.session.id if check.session else None},
        )
        return RestoreResult(
            route=Route.POS,
            user=user,
            registry_session=check.session if check.source is CheckSource.SERVER else None,
            permissions=permissions,
            server_verified=True,
        )

    def _offline(self, user: PosUser, permissions: CashierPermissions | None, cause: str) -> RestoreResult:
        self.context.offline_mode = True
        self.context.totals_stale = self.context.registry_session is not None
        logger.warning("session_restored_offline", extra={"user_id": user.id, "cause": cause})
        self.notifications.warning(
            "Working offline",
            "Showing the last saved session. Sales are kept on this device until the server is reachable.",
            cause=cause,
        )
        return RestoreResult(
            route=Route.POS,
            offline_mode=True,
            user=user,
            registry_session=self.context.registry_session,
            permissions=permissions,
        )

    def remember_login(self, user: PosUser, permissions: CashierPermissions | None = None) -> None:
        self.context.user = user
        self.context.permissions = permissions
        self.context.route = Route.POS
        self.cache.save_user(user)
        if permissions is not None:
            self.cache.save_permissions(permissions)
        logger.info("login_cached", extra={"user_id": user.id})

    def handle_session_expired(self, **_: Any) -> None:
        """Drop the cached login but keep the outbox: queued sales are real business."""
        self.cache.clear_all()
        self.context.reset()
        logger.warning("session_expired")
        self.notifications.warning(
            "Session expired",
            "Please sign in again. Unsynced sales stay on this device and will be sent after login.",
        )

    def logout(self) -> None:
        self.cache.clear_all()
        self.context.reset()
        logger.info("logged_out")
