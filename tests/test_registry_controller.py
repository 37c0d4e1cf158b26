from __future__ import annotations

from decimal import Decimal

import responses

from pos_registry_client import CloseRejection, PosTerminal, RegistryState
from pos_registry_client.models import OperationType
from pos_registry_client.models_registry import VarianceKind
from pos_registry_client.registry_controller import CheckSource

from pos_helpers import (
    CASH_URL,
    CURRENT_URL,
    ORDERS_URL,
    REFUNDS_URL,
    SESSIONS_URL,
    allow_probe,
    attach_open_session,
    calls_to,
    no_pending_refunds,
    request_json,
    session_payload,
    sign_in,
)

SHIFT_TOTALS = {"cashPayments": "3200", "cashOut": "500", "totalOrders": 2}


def _closed(actual: str, variance: str, notes: str | None = None) -> dict:
    return session_payload(
        status="closed",
        closingCash="7700",
        actualCash=actual,
        variance=variance,
        closedBy=1,
        closedAt="2024-01-01T20:00:00Z",
        closingNotes=notes,
        **SHIFT_TOTALS,
    )


@responses.activate
def test_open_sales_cash_out_and_balanced_close(terminal: PosTerminal) -> None:
    sign_in(terminal)
    responses.add(responses.POST, SESSIONS_URL, json=session_payload(), status=201)
    responses.add(responses.POST, ORDERS_URL, json={"id": 1}, status=201)
    responses.add(responses.POST, CASH_URL, json={"id": 1}, status=201)
    responses.add(responses.GET, CURRENT_URL, json=session_payload(**SHIFT_TOTALS), status=200)
    allow_probe()
    no_pending_refunds()
    responses.add(responses.PUT, SESSIONS_URL, json=_closed("7700", "0"), status=200)

    opened = terminal.controller.open("5000", opened_by=1)
    assert opened.ok is True and opened.attached is False
    assert request_json(calls_to(SESSIONS_URL, "POST")[0]) == {"openedBy": 1, "openingCash": "5000"}
    assert terminal.context.registry_state is RegistryState.OPEN
    assert terminal.cache.get_registry_session()["id"] == 1

    assert terminal.api.create_order({"paymentMethod": "cash", "total": "2000"}).ok is True
    assert terminal.api.create_order({"paymentMethod": "cash", "total": "1200"}).ok is True
    cash_out = terminal.api.create_cash_transaction(
        {"transaction_type": "cash_out", "amount": "500", "reason": "bank deposit"}
    )
    assert cash_out.ok is True and cash_out.queued is False
    assert request_json(calls_to(CASH_URL)[0]) == {
        "registrySessionId": 1,
        "cashierId": 1,
        "transactionType": "cash_out",
        "amount": "500",
        "reason": "bank deposit",
    }

    result = terminal.controller.close("7700", closed_by=1)

    assert result.ok is True
    assert result.expected_cash == Decimal("7700")
    assert result.variance == Decimal("0")
    assert result.variance_kind is VarianceKind.MATCH
    body = request_json(calls_to(SESSIONS_URL, "PUT")[0])
    assert body == {"closedBy": 1, "actualCash": "7700"}
    assert "id=1" in calls_to(SESSIONS_URL, "PUT")[0].request.url
    assert terminal.context.registry_state is RegistryState.CLOSED
    assert terminal.cache.get_registry_session() is None
    assert terminal.notifications.latest()["title"] == "Registry closed"

    terminal.controller.handle_closed()
    assert terminal.context.registry_session is None
    assert terminal.context.awaiting_manager_open is True


@responses.activate
def test_large_short_requires_notes(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    allow_probe()
    no_pending_refunds()
    responses.add(responses.GET, CURRENT_URL, json=session_payload(**SHIFT_TOTALS), status=200)
    responses.add(responses.PUT, SESSIONS_URL, json=_closed("6500", "-1200", "short counted twice"), status=200)

    rejected = terminal.controller.close("6500", closed_by=1, closing_notes="   ")
    assert rejected.ok is False
    assert rejected.reason is CloseRejection.NOTES_REQUIRED
    assert rejected.variance == Decimal("-1200")
    assert calls_to(SESSIONS_URL, "PUT") == []
    assert terminal.notifications.latest()["title"] == "Closing notes required"
    assert terminal.context.registry_state is RegistryState.OPEN

    accepted = terminal.controller.close("6500", closed_by=1, closing_notes="short counted twice")
    assert accepted.ok is True
    assert accepted.variance_kind is VarianceKind.SHORT
    assert request_json(calls_to(SESSIONS_URL, "PUT")[0])["closingNotes"] == "short counted twice"


@responses.activate
def test_pending_refunds_block_close_before_sync(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    allow_probe()
    responses.add(
        responses.GET,
        REFUNDS_URL,
        json=[{"id": 4, "refundNumber": "RF-4", "status": "pending", "cashGiven": True, "registrySessionId": 1}],
        status=200,
    )
    terminal.store.enqueue(OperationType.ORDER, {"total": "10"})

    result = terminal.controller.close("5000", closed_by=1)

    assert result.reason is CloseRejection.PENDING_REFUNDS
    assert result.pending_refunds[0]["refundNumber"] == "RF-4"
    assert calls_to(ORDERS_URL) == []
    assert calls_to(SESSIONS_URL, "PUT") == []
    assert terminal.sync.get_pending_sync_count().total == 1


@responses.activate
def test_server_pending_refunds_backstop(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    allow_probe()
    no_pending_refunds()
    responses.add(responses.GET, CURRENT_URL, json=session_payload(), status=200)
    responses.add(
        responses.PUT,
        SESSIONS_URL,
        json={"code": "PENDING_REFUNDS_EXIST", "error": "Refunds pending", "pendingRefunds": [{"id": 8}]},
        status=400,
    )

    result = terminal.controller.close("5000", closed_by=1)

    assert result.reason is CloseRejection.PENDING_REFUNDS
    assert result.pending_refunds == [{"id": 8}]
    assert terminal.context.registry_state is RegistryState.OPEN


@responses.activate
def test_pending_sync_while_offline_rejects_without_network(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    terminal.network.mark_offline()
    assert terminal.api.create_order({"total": "10"}).queued is True

    result = terminal.controller.close("5000", closed_by=1)

    assert result.reason is CloseRejection.PENDING_SYNC_OFFLINE
    assert len(responses.calls) == 0
    assert terminal.notifications.latest()["title"] == "Registry close rejected"


@responses.activate
def test_failed_sync_blocks_close(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    allow_probe()
    no_pending_refunds()
    responses.add(responses.POST, ORDERS_URL, json={"code": "VALIDATION_ERROR", "message": "bad tender"}, status=422)
    terminal.store.enqueue(OperationType.ORDER, {"total": "10"})

    result = terminal.controller.close("5000", closed_by=1)

    assert result.reason is CloseRejection.SYNC_FAILED
    assert result.sync_result.failed_items == 1
    assert "bad tender" in result.message
    assert calls_to(SESSIONS_URL, "PUT") == []
    assert terminal.sync.get_pending_sync_count().total == 1


@responses.activate
def test_invalid_cash_is_checked_after_sync_gates(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    allow_probe()
    no_pending_refunds()

    for value in (None, "", "-1", "seven"):
        result = terminal.controller.close(value, closed_by=1)
        assert result.reason is CloseRejection.INVALID_CASH
    assert calls_to(SESSIONS_URL, "PUT") == []


def test_close_without_session(terminal: PosTerminal) -> None:
    result = terminal.controller.close("100", closed_by=1)
    assert result.reason is CloseRejection.NO_OPEN_SESSION


@responses.activate
def test_close_when_server_unreachable(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    result = terminal.controller.close("5000", closed_by=1)
    assert result.reason is CloseRejection.OFFLINE
    assert terminal.context.registry_state is RegistryState.OPEN


@responses.activate
def test_open_attaches_to_shared_registry(terminal: PosTerminal) -> None:
    sign_in(terminal, user_id=2)
    responses.add(
        responses.POST,
        SESSIONS_URL,
        json={"code": "REGISTRY_ALREADY_OPEN", "error": "Registry already open"},
        status=409,
    )
    responses.add(responses.GET, CURRENT_URL, json=session_payload(cashPayments="800"), status=200)

    result = terminal.controller.open("100", opened_by=2)

    assert result.ok is True
    assert result.attached is True
    assert result.session.opening_cash == Decimal("5000")
    assert terminal.context.registry_session.cash_payments == Decimal("800")

    again = terminal.controller.open("100", opened_by=2)
    assert again.attached is True
    assert len(calls_to(SESSIONS_URL, "POST")) == 1


def test_open_rejects_negative_float(terminal: PosTerminal) -> None:
    result = terminal.controller.open("-10", opened_by=1)
    assert result.ok is False
    assert result.reason == "INVALID_CASH"


@responses.activate
def test_check_current_keeps_known_session_on_error(terminal: PosTerminal) -> None:
    sign_in(terminal)
    session = attach_open_session(terminal)
    responses.add(responses.GET, CURRENT_URL, json={"code": "SERVER_ERROR"}, status=500)

    result = terminal.controller.check_current()

    assert result.offline is True
    assert result.source is CheckSource.CACHE
    assert terminal.context.registry_session == session
    assert terminal.context.offline_mode is True
    assert terminal.context.totals_stale is True


@responses.activate
def test_check_current_clears_only_on_explicit_no_session(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(responses.GET, CURRENT_URL, json={"error": "No open registry session"}, status=404)

    result = terminal.controller.check_current()

    assert result.source is CheckSource.NONE
    assert terminal.context.registry_session is None
    assert terminal.context.awaiting_manager_open is True
    assert terminal.cache.get_registry_session() is None


@responses.activate
def test_record_activity_rereads_totals_and_is_rate_limited(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(responses.GET, CURRENT_URL, json=session_payload(cashPayments="150"), status=200)
    ticks = iter([100.0, 101.5])
    terminal.controller.monotonic = lambda: next(ticks, 101.5)
    terminal.context.last_refresh_at = 99.0

    assert terminal.controller.record_activity(1) is False
    assert terminal.controller.record_activity(1) is True
    assert terminal.controller.expected_cash() == Decimal("5150")
    assert terminal.controller.variance("5100") == Decimal("-50")
    assert len(calls_to(CURRENT_URL)) == 1


@responses.activate
def test_list_cash_transactions_for_close_screen(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    responses.add(
        responses.GET,
        CASH_URL,
        json=[{"id": 1, "transactionType": "cash_out", "amount": "500", "reason": "bank deposit", "cashierName": "Ana"}],
        status=200,
    )
    listing = terminal.controller.list_cash_transactions()
    assert listing.total == 1
    assert listing.rows[0].signed_amount == Decimal("-500")
    assert "registrySessionId=1" in responses.calls[0].request.url
