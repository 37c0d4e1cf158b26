"""Replays the pending-operations outbox against the POS API.

Entries go out oldest first. Each carries the idempotency key it was created
with, so a replay of an operation the server already committed is collapsed
server-side instead of booking the sale twice. Nothing is dropped
automatically: failed entries stay queued with their attempt count and next
retry time until they succeed or an operator discards them.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PayloadValidationError

from .clients.cash_transactions_client import CashTransactionsClient
from .clients.orders_client import OrdersClient
from .config import ClientConfig
from .connectivity import ConnectivityOracle
from .exceptions import ApiError, is_transient
from .local_store import LocalStore
from .models import FailureKind, OperationType, PendingSyncCount, PendingSyncOperation
from .notifications import NotificationCenter

logger = logging.getLogger(__name__)

ALREADY_SYNCING = "ALREADY_SYNCING"
OFFLINE = "OFFLINE"


@dataclass(frozen=True)
class SyncItemResult:
    operation_id: str
    operation_type: str
    status: str
    error_code: str | None = None
    error_message: str | None = None
    failure_kind: FailureKind | None = None


@dataclass(frozen=True)
class SyncResult:
    success: bool
    total_items: int = 0
    synced_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    details: tuple[SyncItemResult, ...] = ()
    errors: tuple[str, ...] = ()
    reason: str | None = None


@dataclass(frozen=True)
class SyncProgress:
    status: str
    current_item: int
    total_items: int
    current_type: str | None = None
    message: str = ""


@dataclass(frozen=True)
class SubmitOutcome:
    operation: PendingSyncOperation
    synced: bool = False
    queued: bool = False
    response: dict[str, Any] | None = None
    error: ApiError | None = None


ProgressListener = Callable[[SyncProgress], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _payload_error(exc: PayloadValidationError) -> ApiError:
    return ApiError(
        code="INVALID_PAYLOAD",
        message=str(exc),
        details={"errors": exc.errors(include_url=False)},
        trace_id=None,
        status_code=400,
    )


@dataclass
class SyncManager:
    store: LocalStore
    connectivity: ConnectivityOracle
    orders: OrdersClient
    cash_transactions: CashTransactionsClient
    config: ClientConfig
    notifications: NotificationCenter | None = None
    clock: Callable[[], datetime] = _now
    _listeners: list[ProgressListener] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def syncing(self) -> bool:
        return self._lock.locked()

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_pending_sync_count(self) -> PendingSyncCount:
        return self.store.pending_count()

    def get_stats(self) -> dict[str, Any]:
        pending = self.store.list_pending()
        by_type: dict[str, dict[str, int]] = {}
        for operation in pending:
            bucket = by_type.setdefault(operation.operation_type.value, {"pending": 0, "needs_review": 0})
            bucket["pending"] += 1
            if operation.needs_review:
                bucket["needs_review"] += 1
        return {
            "total": len(pending),
            "needs_review": sum(bucket["needs_review"] for bucket in by_type.values()),
            "by_type": by_type,
            "oldest_created_at": pending[0].created_at.isoformat() if pending else None,
        }

    def sync_all(self, *, force: bool = False) -> SyncResult:
        """Replay every entry queued before this call.

        Never raises for a single entry; only StoreError (outbox unreadable)
        escapes. ``force`` ignores per-entry backoff windows.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("sync_refused", extra={"reason": ALREADY_SYNCING})
            return SyncResult(success=False, reason=ALREADY_SYNCING, errors=("A sync pass is already running",))
        try:
            if not self.connectivity.is_online():
                logger.info("sync_refused", extra={"reason": OFFLINE})
                return SyncResult(success=False, reason=OFFLINE, errors=("Device is offline",))
            return self._run_pass(force=force)
        finally:
            self._lock.release()

    def submit(self, operation_type: OperationType | str, payload: Mapping[str, Any]) -> SubmitOutcome:
        """Queue a cashier action durably, then try to send it right away."""
        operation = self.store.enqueue(operation_type, dict(payload))
        if not self.connectivity.is_online() or self.syncing:
            return SubmitOutcome(operation=operation, queued=True)
        if self.store.has_pending_before(operation):
            logger.info(
                "submit_queued_behind_older",
                extra={"operation_id": operation.id, "operation_type": operation.operation_type.value},
            )
            return SubmitOutcome(operation=operation, queued=True)

        try:
            response = self._replay(operation)
        except (ApiError, PayloadValidationError) as exc:
            error = _payload_error(exc) if isinstance(exc, PayloadValidationError) else exc
            if is_transient(error):
                self._record_failure(operation, error, FailureKind.TRANSIENT)
                return SubmitOutcome(operation=operation, queued=True, error=error)
            # Rejected while the operator is still at the screen: hand it back instead of parking it.
            self.store.remove(operation.id)
            logger.warning(
                "submit_rejected",
                extra={"operation_id": operation.id, "code": error.code, "status_code": error.status_code},
            )
            return SubmitOutcome(operation=operation, error=error)

        self.store.remove(operation.id)
        logger.info(
            "submit_synced",
            extra={"operation_id": operation.id, "operation_type": operation.operation_type.value},
        )
        return SubmitOutcome(operation=operation, synced=True, response=response)

    def discard(self, operation_id: str, *, reason: str) -> bool:
        operation = self.store.discard(operation_id, reason=reason)
        if operation is None:
            return False
        if self.notifications:
            self.notifications.warning(
                "Pending operation discarded",
                f"The queued {operation.operation_type.value} was removed and will not be sent.",
                operation_id=operation_id,
                reason=reason,
            )
        return True

    def _run_pass(self, *, force: bool) -> SyncResult:
        snapshot = self.store.list_pending()
        total = len(snapshot)
        if not total:
            return SyncResult(success=True)

        logger.info("sync_started", extra={"total_items": total, "force": force})
        self._notify_progress(SyncProgress("syncing", 0, total, message=f"Syncing {total} pending operations"))
        if self.notifications:
            self.notifications.info("Sync started", f"Sending {total} pending operations to the server.")

        now = self.clock()
        details: list[SyncItemResult] = []
        # stream -> (entry holding it back, whether that entry failed rather than waited)
        held: dict[OperationType, tuple[str, bool]] = {}

        for index, operation in enumerate(snapshot, start=1):
            stream = operation.operation_type
            self._notify_progress(SyncProgress("syncing", index, total, stream.value, f"Syncing {stream.value}"))

            if stream in held:
                blocker, failed = held[stream]
                details.append(
                    SyncItemResult(
                        operation_id=operation.id,
                        operation_type=stream.value,
                        status="blocked" if failed else "skipped",
                        error_code="BLOCKED",
                        error_message=f"blocked behind {blocker}",
                    )
                )
                continue

            if not force and not operation.is_due(now):
                held[stream] = (operation.id, False)
                details.append(SyncItemResult(operation_id=operation.id, operation_type=stream.value, status="skipped"))
                continue

            try:
                self._replay(operation)
            except (ApiError, PayloadValidationError) as exc:
                error = _payload_error(exc) if isinstance(exc, PayloadValidationError) else exc
                kind = FailureKind.TRANSIENT if is_transient(error) else FailureKind.PERMANENT
                self._record_failure(operation, error, kind)
                held[stream] = (operation.id, True)
                details.append(
                    SyncItemResult(
                        operation_id=operation.id,
                        operation_type=stream.value,
                        status="failed",
                        error_code=error.code,
                        error_message=error.message,
                        failure_kind=kind,
                    )
                )
                continue

            self.store.remove(operation.id)
            details.append(SyncItemResult(operation_id=operation.id, operation_type=stream.value, status="synced"))

        return self._finish(details, total)

    def _finish(self, details: list[SyncItemResult], total: int) -> SyncResult:
        synced = sum(1 for item in details if item.status == "synced")
        failed = sum(1 for item in details if item.status in {"failed", "blocked"})
        skipped = sum(1 for item in details if item.status == "skipped")
        errors = tuple(
            f"{item.operation_type} {item.operation_id}: {item.error_message}"
            for item in details
            if item.status == "failed"
        )
        result = SyncResult(
            success=failed == 0,
            total_items=total,
            synced_items=synced,
            failed_items=failed,
            skipped_items=skipped,
            details=tuple(details),
            errors=errors,
        )
        logger.info(
            "sync_completed",
            extra={"total_items": total, "synced": synced, "failed": failed, "skipped": skipped},
        )
        status = "completed" if result.success else "failed"
        self._notify_progress(SyncProgress(status, total, total, message=f"{synced} of {total} operations synced"))
        if self.notifications:
            if result.success:
                self.notifications.success(
                    "Sync completed",
                    f"{synced} pending operations reached the server.",
                    synced=synced,
                    skipped=skipped,
                )
            else:
                self.notifications.error(
                    "Sync incomplete",
                    f"{failed} operations could not be sent and remain queued for review.",
                    synced=synced,
                    failed=failed,
                    errors=list(errors),
                )
        return result

    def _replay(self, operation: PendingSyncOperation) -> dict[str, Any]:
        key = operation.idempotency_key
        if operation.operation_type is OperationType.ORDER:
            return self.orders.create_order(operation.payload, idempotency_key=key)
        if operation.operation_type is OperationType.REFUND:
            return self.orders.create_refund(operation.payload, idempotency_key=key)
        return self.cash_transactions.create(operation.payload, idempotency_key=key)

    def _record_failure(self, operation: PendingSyncOperation, error: ApiError, kind: FailureKind) -> None:
        delay = min(
            self.config.sync_backoff_seconds * (2 ** min(operation.attempts, 16)),
            self.config.sync_max_backoff_seconds,
        )
        next_attempt_at = self.clock() + timedelta(seconds=delay)
        self.store.record_failure(
            operation.id,
            error=f"{error.code}: {error.message}",
            kind=kind,
            next_attempt_at=next_attempt_at,
        )
        log = logger.warning if kind is FailureKind.PERMANENT else logger.info
        log(
            "sync_item_failed",
            extra={
                "operation_id": operation.id,
                "operation_type": operation.operation_type.value,
                "code": error.code,
                "status_code": error.status_code,
                "failure_kind": kind.value,
                "attempts": operation.attempts + 1,
                "next_attempt_at": next_attempt_at.isoformat(),
            },
        )

    def _notify_progress(self, progress: SyncProgress) -> None:
        for listener in list(self._listeners):
            try:
                listener(progress)
            except Exception:
                logger.exception("sync_progress_listener_failed")
