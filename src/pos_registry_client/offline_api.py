from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError as PayloadValidationError

from .cash_validation import validate_cash_transaction_payload
from .exceptions import ApiError, StoreError
from .models import OperationType
from .models_cash import CashTransactionRequest
from .notifications import NotificationCenter
from .registry_controller import RegistrySessionController
from .state import PosContext
from .sync_manager import SyncManager
from .ui_errors import to_user_facing_error

logger = logging.getLogger(__name__)

OFFLINE_STORAGE_ERROR = "OFFLINE_STORAGE_ERROR"
REGISTRY_NOT_OPEN = "REGISTRY_NOT_OPEN"
VALIDATION_ERROR = "VALIDATION_ERROR"

_LABELS = {
    OperationType.ORDER: "Order",
    OperationType.CASH_TRANSACTION: "Cash movement",
    OperationType.REFUND: "Refund",
}


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    queued: bool = False
    operation_id: str | None = None
    idempotency_key: str | None = None
    response: dict[str, Any] | None = None
    error_code: str | None = None
    message: str = ""
    error: ApiError | None = None


@dataclass
class OfflineAwareApi:
    """Cashier writes that survive a dead network: stored first, sent when possible."""

    context: PosContext
    sync: SyncManager
    controller: RegistrySessionController
    notifications: NotificationCenter

    def create_order(self, payload: Mapping[str, Any]) -> SubmissionResult:
        if not self.context.has_open_session:
            return self._refuse(REGISTRY_NOT_OPEN, "Open the registry before taking orders.")
        body = dict(payload)
        body.setdefault("registrySessionId", self.context.registry_session.id)
        return self._submit(OperationType.ORDER, body)

    def create_cash_transaction(self, request: CashTransactionRequest | Mapping[str, Any]) -> SubmissionResult:
        session = self.context.registry_session
        if session is None or not self.context.has_open_session:
            return self._refuse(REGISTRY_NOT_OPEN, "Open the registry before recording cash movements.")

        if isinstance(request, CashTransactionRequest):
            raw = request.model_dump()
        else:
            raw = dict(request)
        transaction_type = raw.get("transaction_type", raw.get("transactionType"))
        check = validate_cash_transaction_payload(transaction_type, raw.get("amount"), raw.get("reason"))
        if not check.ok:
            return self._refuse(VALIDATION_ERROR, check.text())

        raw.setdefault("registry_session_id", raw.pop("registrySessionId", session.id))
        if raw.get("cashier_id") is None and raw.get("cashierId") is None and self.context.user:
            raw["cashier_id"] = self.context.user.id
        try:
            validated = CashTransactionRequest.model_validate(raw)
        except PayloadValidationError as exc:
            return self._refuse(VALIDATION_ERROR, str(exc))
        return self._submit(OperationType.CASH_TRANSACTION, validated.to_wire())

    def process_refund(self, payload: Mapping[str, Any]) -> SubmissionResult:
        body = dict(payload)
        if self.context.registry_session is not None:
            body.setdefault("registrySessionId", self.context.registry_session.id)
        return self._submit(OperationType.REFUND, body)

    def _submit(self, operation_type: OperationType, payload: dict[str, Any]) -> SubmissionResult:
        label = _LABELS[operation_type]
        try:
            outcome = self.sync.submit(operation_type, payload)
        except StoreError as exc:
            logger.exception("submission_store_failed", extra={"operation_type": operation_type.value})
            self.notifications.error(
                f"{label} not saved",
                "The device storage is unavailable, so the operation could not be kept for later sync.",
            )
            return SubmissionResult(ok=False, error_code=OFFLINE_STORAGE_ERROR, message=str(exc))

        operation = outcome.operation
        if outcome.error is not None and not outcome.queued:
            error = outcome.error
            self.notifications.error(
                f"{label} rejected",
                to_user_facing_error(error).message,
                code=error.code,
                trace_id=error.trace_id,
            )
            return SubmissionResult(
                ok=False,
                operation_id=operation.id,
                idempotency_key=operation.idempotency_key,
                error_code=error.code,
                message=error.message,
                error=error,
            )

        if outcome.queued:
            self.notifications.info(
                f"{label} saved offline",
                f"{label} will be sent when the connection returns.",
                operation_id=operation.id,
            )
        self.controller.record_activity(
            self.context.user.id if self.context.user else None,
            queued=outcome.queued,
        )
        return SubmissionResult(
            ok=True,
            queued=outcome.queued,
            operation_id=operation.id,
            idempotency_key=operation.idempotency_key,
            response=outcome.response,
            error=outcome.error,
        )

    def _refuse(self, code: str, message: str) -> SubmissionResult:
        logger.info("submission_refused", extra={"code": code})
        return SubmissionResult(ok=False, error_code=code, message=message)
