from __future__ import annotations

import pytest
import responses

from pos_registry_client import PosTerminal
from pos_registry_client.exceptions import StoreError
from pos_registry_client.models_cash import CashTransactionRequest

from pos_helpers import CASH_URL, ORDERS_URL, REFUNDS_URL, attach_open_session, calls_to, request_json, sign_in


def test_orders_need_an_open_registry(terminal: PosTerminal) -> None:
    sign_in(terminal)
    result = terminal.api.create_order({"total": "10"})
    assert result.ok is False
    assert result.error_code == "REGISTRY_NOT_OPEN"
    assert terminal.sync.get_pending_sync_count().total == 0


def test_cash_transaction_validation_happens_before_queueing(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    result = terminal.api.create_cash_transaction({"transaction_type": "cash_out", "amount": "0", "reason": ""})
    assert result.ok is False
    assert result.error_code == "VALIDATION_ERROR"
    assert "amount" in result.message and "reason" in result.message
    assert terminal.sync.get_pending_sync_count().total == 0


@responses.activate
def test_model_request_is_sent_with_idempotency_key(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(responses.POST, CASH_URL, json={"id": 12}, status=201)
    request = CashTransactionRequest(
        registry_session_id=1,
        cashier_id=3,
        transaction_type="cash_in",
        amount="250",
        reason="change float",
        reference="BANK-1",
    )

    result = terminal.api.create_cash_transaction(request)

    assert result.ok is True and result.queued is False
    call = calls_to(CASH_URL)[0]
    assert call.request.headers["Idempotency-Key"] == result.idempotency_key
    assert call.request.headers["Authorization"] == "Bearer token"
    assert request_json(call)["cashierId"] == 3
    assert request_json(call)["reference"] == "BANK-1"


@responses.activate
def test_rejected_order_is_returned_not_queued(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(
        responses.POST,
        ORDERS_URL,
        json={"code": "VALIDATION_ERROR", "error": "Payment amount is malformed"},
        status=400,
    )

    result = terminal.api.create_order({"total": "abc"})

    assert result.ok is False
    assert result.error_code == "VALIDATION_ERROR"
    assert result.message == "Payment amount is malformed"
    assert terminal.sync.get_pending_sync_count().total == 0
    assert terminal.notifications.latest()["title"] == "Order rejected"


@responses.activate
def test_network_failure_keeps_order_queued(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)

    result = terminal.api.create_order({"total": "10"})

    assert result.ok is True
    assert result.queued is True
    assert result.error is not None and result.error.code == "NETWORK_ERROR"
    assert request_json(calls_to(ORDERS_URL)[0])["registrySessionId"] == 1
    pending = terminal.store.list_pending()
    assert len(pending) == 1 and pending[0].attempts == 1
    assert terminal.context.totals_stale is True
    assert terminal.notifications.latest()["title"] == "Order saved offline"


@responses.activate
def test_refund_goes_through_outbox(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(responses.POST, REFUNDS_URL, json={"id": 5, "status": "pending"}, status=201)

    result = terminal.api.process_refund({"orderId": 10, "amount": "20", "reason": "damaged"})

    assert result.ok is True
    assert result.response == {"id": 5, "status": "pending"}
    assert request_json(calls_to(REFUNDS_URL, "POST")[0])["registrySessionId"] == 1


def test_storage_failure_is_reported(terminal: PosTerminal, monkeypatch: pytest.MonkeyPatch) -> None:
    sign_in(terminal)
    attach_open_session(terminal)

    def broken(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(terminal.store, "enqueue", broken)
    result = terminal.api.create_order({"total": "10"})
    assert result.ok is False
    assert result.error_code == "OFFLINE_STORAGE_ERROR"
    assert terminal.notifications.latest()["title"] == "Order not saved"
