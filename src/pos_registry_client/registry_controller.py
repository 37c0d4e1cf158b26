"""Open/close lifecycle of the shared cash drawer.

The drawer is one resource for every cashier in the store. The server keeps
the only authoritative totals; this controller reads them back after each
change and never adds amounts locally.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError as PayloadValidationError

from .cash_validation import (
    closing_notes_required,
    parse_amount,
    validate_close_registry_payload,
    validate_open_registry_payload,
)
from .clients.cash_transactions_client import CashTransactionsClient
from .clients.registry_client import RegistryClient
from .config import ClientConfig
from .connectivity import ConnectivityOracle
from .exceptions import (
    ApiError,
    AuthError,
    PendingRefundsError,
    RegistryAlreadyOpenError,
    StoreError,
    TransportError,
)
from .local_store import SessionCache
from .models_cash import CashTransactionListResponse
from .models_registry import RegistrySession, VarianceKind, classify_variance
from .notifications import NotificationCenter
from .state import PosContext, RegistryState
from .sync_manager import SyncManager, SyncResult

logger = logging.getLogger(__name__)


class CloseRejection(str, Enum):
    NO_OPEN_SESSION = "NO_OPEN_SESSION"
    PENDING_REFUNDS = "PENDING_REFUNDS"
    PENDING_SYNC_OFFLINE = "PENDING_SYNC_OFFLINE"
    SYNC_FAILED = "SYNC_FAILED"
    PENDING_SYNC = "PENDING_SYNC"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_CASH = "INVALID_CASH"
    NOTES_REQUIRED = "NOTES_REQUIRED"
    SERVER_REJECTED = "SERVER_REJECTED"
    OFFLINE = "OFFLINE"


class CheckSource(str, Enum):
    SERVER = "server"
    CACHE = "cache"
    NONE = "none"


@dataclass(frozen=True)
class OpenResult:
    ok: bool
    session: RegistrySession | None = None
    attached: bool = False
    reason: str | None = None
    message: str = ""
    error: ApiError | None = None


@dataclass(frozen=True)
class CheckResult:
    ok: bool
    source: CheckSource
    session: RegistrySession | None = None
    offline: bool = False
    error: ApiError | None = None


@dataclass(frozen=True)
class CloseResult:
    ok: bool
    reason: CloseRejection | None = None
    message: str = ""
    session: RegistrySession | None = None
    expected_cash: Decimal | None = None
    variance: Decimal | None = None
    variance_kind: VarianceKind | None = None
    pending_refunds: list[dict[str, Any]] = field(default_factory=list)
    sync_result: SyncResult | None = None
    error: ApiError | None = None


@dataclass
class RegistrySessionController:
    context: PosContext
    registry: RegistryClient
    cash_transactions: CashTransactionsClient
    cache: SessionCache
    connectivity: ConnectivityOracle
    sync: SyncManager
    config: ClientConfig
    notifications: NotificationCenter = field(default_factory=NotificationCenter)
    monotonic: Callable[[], float] = time.monotonic

    # open ---------------------------------------------------------------

    def open(self, opening_cash: object, opened_by: int, notes: str | None = None) -> OpenResult:
        check = validate_open_registry_payload(opening_cash)
        if not check.ok or check.amount is None:
            return OpenResult(ok=False, reason="INVALID_CASH", message=check.text())

        if self.context.has_open_session:
            # Shared drawer: someone already opened it, so join instead of opening a second one.
            return OpenResult(ok=True, session=self.context.registry_session, attached=True)

        try:
            session = self.registry.open_session(opened_by, check.amount, notes)
        except RegistryAlreadyOpenError as exc:
            return self._attach_existing(exc)
        except TransportError as exc:
            logger.warning("registry_open_offline", extra={"trace_id": exc.trace_id})
            self.notifications.error(
                "Registry not opened",
                "The server could not be reached. Opening the registry needs a connection.",
            )
            return OpenResult(ok=False, reason="OFFLINE", message=exc.message, error=exc)
        except ApiError as exc:
            logger.warning("registry_open_rejected", extra={"code": exc.code, "trace_id": exc.trace_id})
            self.notifications.error("Registry not opened", exc.message, code=exc.code)
            return OpenResult(ok=False, reason="SERVER_REJECTED", message=exc.message, error=exc)

        self._adopt(session)
        logger.info("registry_opened", extra={"session_id": session.id, "opened_by": opened_by})
        self.notifications.success(
            "Registry opened",
            f"Session {session.session_number or session.id} opened with {session.opening_cash} in the drawer.",
            session_id=session.id,
        )
        return OpenResult(ok=True, session=session)

    def _attach_existing(self, error: RegistryAlreadyOpenError) -> OpenResult:
        try:
            current = self.registry.get_current_session()
        except ApiError as exc:
            return OpenResult(ok=False, reason="SERVER_REJECTED", message=exc.message, error=exc)
        if current is None or not current.is_open:
            return OpenResult(ok=False, reason="SERVER_REJECTED", message=error.message, error=error)
        self._adopt(current)
        logger.info("registry_attached", extra={"session_id": current.id})
        self.notifications.info(
            "Registry already open",
            f"Joined session {current.session_number or current.id} opened by {current.opener_name or 'another cashier'}.",
            session_id=current.id,
        )
        return OpenResult(ok=True, session=current, attached=True)

    # current session ----------------------------------------------------

    def check_current(self) -> CheckResult:
        self.context.checking_registry = True
        try:
            session = self.registry.get_current_session()
        except ApiError as exc:
            return self._fall_back_to_cache(exc)
        finally:
            self.context.checking_registry = False

        self.context.offline_mode = False
        self.context.last_refresh_at = self.monotonic()
        if session is None or not session.is_open:
            # Only an explicit "no session" answer clears what we know.
            self.context.detach_session()
            self.context.awaiting_manager_open = True
            self.cache.clear_registry_session()
            logger.info("registry_none_open")
            return CheckResult(ok=True, source=CheckSource.NONE)

        self._adopt(session)
        return CheckResult(ok=True, source=CheckSource.SERVER, session=session)

    def _fall_back_to_cache(self, error: ApiError) -> CheckResult:
        if isinstance(error, AuthError):
            # Expired login: the session-expired handler owns the context now.
            logger.warning("registry_check_unauthorized", extra={"code": error.code})
            return CheckResult(ok=False, source=CheckSource.NONE, error=error)
        self.context.offline_mode = True
        self.context.totals_stale = True
        session = self.context.registry_session
        if session is None:
            cached = self.cache.get_registry_session()
            if cached:
                try:
                    session = RegistrySession.model_validate(cached)
                except PayloadValidationError:
                    logger.warning("session_cache_entry_invalid", extra={"key": "registry_session"})
                    self.cache.clear_registry_session()
                    session = None
                else:
                    self.context.attach_session(session)
        logger.warning(
            "registry_check_failed",
            extra={"code": error.code, "status_code": error.status_code, "cached": session is not None},
        )
        return CheckResult(
            ok=session is not None,
            source=CheckSource.CACHE if session is not None else CheckSource.NONE,
            session=session,
            offline=True,
            error=error,
        )

    def record_activity(self, cashier_id: int | None = None, *, queued: bool = False) -> bool:
        """Re-read the session totals after an order, refund or cash movement.

        Returns True when fresh server totals were loaded.
        """
        if queued:
            self.context.totals_stale = True
        now = self.monotonic()
        last = self.context.last_refresh_at
        if last is not None and now - last < self.config.refresh_min_interval_seconds:
            logger.debug("registry_refresh_throttled", extra={"cashier_id": cashier_id})
            return False
        if not self.connectivity.is_online():
            self.context.totals_stale = True
            return False
        result = self.check_current()
        return result.source is CheckSource.SERVER

    # cash figures -------------------------------------------------------

    def expected_cash(self) -> Decimal | None:
        session = self.context.registry_session
        return session.expected_cash if session else None

    def variance(self, actual_cash: object) -> Decimal | None:
        session = self.context.registry_session
        amount = parse_amount(actual_cash)
        if session is None or amount is None:
            return None
        return session.variance_for(amount)

    def list_cash_transactions(self) -> CashTransactionListResponse:
        session = self.context.registry_session
        if session is None:
            return CashTransactionListResponse()
        return self.cash_transactions.list_for_session(session.id)

    # close --------------------------------------------------------------

    def close(self, actual_cash: object, closed_by: int, closing_notes: str | None = None) -> CloseResult:
        session = self.context.registry_session
        if session is None or not self.context.has_open_session:
            return self._reject(CloseRejection.NO_OPEN_SESSION, "There is no open registry session to close.")

        online = self.connectivity.check_actual_connectivity()

        if online:
            try:
                refunds = self.registry.list_pending_refunds(session.id)
            except ApiError as exc:
                # The close endpoint re-checks refunds, so a failed pre-check is not fatal.
                logger.warning("pending_refunds_check_failed", extra={"code": exc.code})
                refunds = []
            if refunds:
                return self._reject(
                    CloseRejection.PENDING_REFUNDS,
                    f"{len(refunds)} refund(s) are awaiting approval for this session.",
                    pending_refunds=[refund.to_wire() for refund in refunds],
                )

        sync_result: SyncResult | None = None
        try:
            pending = self.sync.get_pending_sync_count()
            if pending.total:
                if not online:
                    return self._reject(
                        CloseRejection.PENDING_SYNC_OFFLINE,
                        f"{pending.total} operation(s) are not synced and the server is unreachable.",
                    )
                self.context.is_syncing = True
                try:
                    sync_result = self.sync.sync_all(force=True)
                finally:
                    self.context.is_syncing = False
                if sync_result.failed_items > 0:
                    return self._reject(
                        CloseRejection.SYNC_FAILED,
                        f"{sync_result.failed_items} operation(s) failed to sync: {'; '.join(sync_result.errors)}",
                        sync_result=sync_result,
                    )
                remaining = self.sync.get_pending_sync_count()
                if remaining.total:
                    return self._reject(
                        CloseRejection.PENDING_SYNC,
                        f"{remaining.total} operation(s) are still waiting to sync.",
                        sync_result=sync_result,
                    )
        except StoreError as exc:
            logger.exception("registry_close_store_unavailable")
            return self._reject(
                CloseRejection.STORE_UNAVAILABLE,
                f"Pending operations could not be read: {exc}",
                sync_result=sync_result,
            )

        check = validate_close_registry_payload(actual_cash)
        if not check.ok or check.amount is None:
            return self._reject(CloseRejection.INVALID_CASH, check.text())
        actual = check.amount

        if online:
            session = self._reload_for_close(session)
            if session is None:
                return self._reject(
                    CloseRejection.NO_OPEN_SESSION,
                    "The registry was already closed on another terminal.",
                )

        expected = session.expected_cash
        variance = session.variance_for(actual)
        kind = classify_variance(variance)
        notes = (closing_notes or "").strip() or None
        if notes is None and closing_notes_required(variance, self.config.variance_notes_threshold):
            self.notifications.warning(
                "Closing notes required",
                f"Variance of {variance} ({kind.label}) exceeds {self.config.variance_notes_threshold}.",
                variance=str(variance),
            )
            return self._reject(
                CloseRejection.NOTES_REQUIRED,
                f"Closing notes are required when the variance exceeds {self.config.variance_notes_threshold}.",
                expected_cash=expected,
                variance=variance,
                sync_result=sync_result,
                notify=False,
            )

        try:
            closed = self.registry.close_session(
                session.id,
                closed_by=closed_by,
                actual_cash=actual,
                closing_notes=notes,
            )
        except PendingRefundsError as exc:
            return self._reject(
                CloseRejection.PENDING_REFUNDS,
                exc.message,
                pending_refunds=exc.pending_refunds,
                error=exc,
            )
        except TransportError as exc:
            return self._reject(CloseRejection.OFFLINE, "The server could not be reached.", error=exc)
        except ApiError as exc:
            return self._reject(CloseRejection.SERVER_REJECTED, exc.message, error=exc)

        self.context.attach_session(closed)
        self.context.registry_state = RegistryState.CLOSED
        self.cache.clear_registry_session()
        logger.info(
            "registry_closed",
            extra={"session_id": session.id, "closed_by": closed_by, "variance": str(variance), "kind": kind.value},
        )
        level = self.notifications.success if kind is VarianceKind.MATCH else self.notifications.warning
        level(
            "Registry closed",
            f"Expected {expected}, counted {actual}: {kind.label} ({variance}).",
            session_id=session.id,
            variance=str(variance),
        )
        return CloseResult(
            ok=True,
            session=closed,
            expected_cash=expected,
            variance=variance,
            variance_kind=kind,
            sync_result=sync_result,
        )

    def handle_closed(self) -> None:
        """Clear the closed session so the next shift starts from open()."""
        self.context.detach_session()
        self.context.awaiting_manager_open = True
        self.cache.clear_registry_session()

    def _reload_for_close(self, session: RegistrySession) -> RegistrySession | None:
        try:
            current = self.registry.get_current_session()
        except ApiError as exc:
            logger.warning("registry_close_refresh_failed", extra={"code": exc.code})
            return session
        if current is None or current.id != session.id or not current.is_open:
            self.context.detach_session()
            self.cache.clear_registry_session()
            return None
        self._adopt(current)
        return current

    def _adopt(self, session: RegistrySession) -> None:
        self.context.attach_session(session)
        self.context.last_refresh_at = self.monotonic()
        self.context.totals_stale = self._has_queued_changes()
        self.cache.save_registry_session(session)

    def _has_queued_changes(self) -> bool:
        try:
            return self.sync.get_pending_sync_count().total > 0
        except StoreError:
            return True

    def _reject(
        self,
        reason: CloseRejection,
        message: str,
        *,
        notify: bool = True,
        **extra: Any,
    ) -> CloseResult:
        logger.warning("registry_close_rejected", extra={"reason": reason.value, "detail": message})
        if notify:
            self.notifications.error("Registry close rejected", message, reason=reason.value)
        return CloseResult(ok=False, reason=reason, message=message, **extra)
