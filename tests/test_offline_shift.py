from __future__ import annotations

import responses

from pos_registry_client import CloseRejection, PosTerminal

from pos_helpers import (
    CURRENT_URL,
    IdempotentOrderServer,
    ORDERS_URL,
    SESSIONS_URL,
    allow_probe,
    attach_open_session,
    calls_to,
    no_pending_refunds,
    session_payload,
    sign_in,
)


@responses.activate
def test_orders_taken_offline_sync_once_then_close_is_allowed(terminal: PosTerminal) -> None:
    sign_in(terminal)
    attach_open_session(terminal)
    server = IdempotentOrderServer()
    responses.add_callback(responses.POST, ORDERS_URL, callback=server)
    allow_probe()
    no_pending_refunds()
    responses.add(
        responses.GET,
        CURRENT_URL,
        json=session_payload(cashPayments="600", totalOrders=3),
        status=200,
    )
    responses.add(
        responses.PUT,
        SESSIONS_URL,
        json=session_payload(status="closed", cashPayments="600", actualCash="5600", variance="0"),
        status=200,
    )

    terminal.network.mark_offline()
    submitted = [terminal.api.create_order({"paymentMethod": "cash", "total": "200"}) for _ in range(3)]
    assert all(result.ok and result.queued for result in submitted)
    assert len(responses.calls) == 0
    assert terminal.sync.get_pending_sync_count().total == 3
    assert terminal.context.totals_stale is True

    blocked = terminal.controller.close("5600", closed_by=1)
    assert blocked.reason is CloseRejection.PENDING_SYNC_OFFLINE

    # Reconnecting drains the outbox and reloads the shared totals.
    terminal.network.mark_online()

    assert len(server.committed) == 3
    assert set(server.committed) == {result.idempotency_key for result in submitted}
    assert len(calls_to(ORDERS_URL)) == 3
    assert terminal.sync.get_pending_sync_count().total == 0
    assert terminal.context.registry_session.cash_payments == 600
    assert terminal.context.totals_stale is False

    # A second pass has nothing left to send.
    assert terminal.sync.sync_all().total_items == 0
    assert len(calls_to(ORDERS_URL)) == 3

    closed = terminal.controller.close("5600", closed_by=1)
    assert closed.ok is True
    assert closed.variance == 0
    assert len(server.committed) == 3
