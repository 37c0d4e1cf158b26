from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pos_registry_client.exceptions import StoreError
from pos_registry_client.local_store import LocalStore, SessionCache
from pos_registry_client.models import FailureKind, OperationType, PosUser

from pos_helpers import session_payload


def test_outbox_is_fifo_and_keeps_keys(tmp_path: Path) -> None:
    store = LocalStore(tmp_path / "pos.sqlite3")
    first = store.enqueue(OperationType.ORDER, {"total": "10"})
    second = store.enqueue("cash_transaction", {"amount": "5"})
    third = store.enqueue(OperationType.ORDER, {"total": "20"}, idempotency_key="fixed-key")

    pending = store.list_pending()
    assert [op.id for op in pending] == [first.id, second.id, third.id]
    assert pending[0].seq < pending[1].seq < pending[2].seq
    assert pending[2].idempotency_key == "fixed-key"
    assert first.idempotency_key.startswith("pos-order-")
    assert pending[0].attempts == 0
    assert pending[0].created_at.tzinfo is not None

    orders = store.list_pending(OperationType.ORDER)
    assert [op.id for op in orders] == [first.id, third.id]
    assert store.has_pending_before(third) is True
    assert store.has_pending_before(first) is False


def test_outbox_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "pos.sqlite3"
    op = LocalStore(path).enqueue(OperationType.REFUND, {"amount": "3"})
    reopened = LocalStore(path)
    assert reopened.get(op.id).payload == {"amount": "3"}


def test_record_failure_and_counts(tmp_path: Path) -> None:
    store = LocalStore(tmp_path / "pos.sqlite3")
    op = store.enqueue(OperationType.ORDER, {"total": "10"})
    store.enqueue(OperationType.CASH_TRANSACTION, {"amount": "5"})
    retry_at = datetime.now(timezone.utc) + timedelta(seconds=30)

    store.record_failure(op.id, error="VALIDATION_ERROR: bad", kind=FailureKind.PERMANENT, next_attempt_at=retry_at)
    stored = store.get(op.id)
    assert stored.attempts == 1
    assert stored.needs_review is True
    assert stored.last_error == "VALIDATION_ERROR: bad"
    assert stored.is_due(datetime.now(timezone.utc)) is False
    assert stored.payload == {"total": "10"}

    count = store.pending_count()
    assert count.total == 2
    assert count.count(OperationType.ORDER) == 1
    assert count.count("refund") == 0

    assert store.remove(op.id) is True
    assert store.remove(op.id) is False
    assert store.pending_count().total == 1


def test_discard_is_explicit(tmp_path: Path) -> None:
    store = LocalStore(tmp_path / "pos.sqlite3")
    op = store.enqueue(OperationType.ORDER, {"total": "10"})
    discarded = store.discard(op.id, reason="duplicate entered by mistake")
    assert discarded is not None and discarded.id == op.id
    assert store.discard(op.id, reason="again") is None
    assert store.list_pending() == []


def test_session_cache_round_trip_and_clear_keeps_outbox(tmp_path: Path) -> None:
    store = LocalStore(tmp_path / "pos.sqlite3")
    cache = SessionCache(store)
    store.enqueue(OperationType.ORDER, {"total": "10"})

    assert cache.save_user(PosUser(id=7, full_name="Ana")) is True
    assert cache.save_registry_session(session_payload()) is True
    assert cache.save_permissions({"canCloseRegistry": True}) is True
    assert cache.get_user()["fullName"] == "Ana"
    assert cache.get_registry_session()["id"] == 1

    assert cache.clear_registry_session() is True
    assert cache.get_registry_session() is None
    assert cache.get_user() is not None

    assert cache.clear_all() is True
    assert cache.clear_all() is True
    assert cache.get_user() is None
    assert cache.get_permissions() is None
    assert store.pending_count().total == 1


def test_unusable_store_reads_as_cache_miss(tmp_path: Path) -> None:
    # A directory cannot be opened as a database file.
    store = LocalStore(tmp_path)
    cache = SessionCache(store)
    assert cache.get_user() is None
    assert cache.save_user({"id": 1}) is False
    assert cache.clear_all() is False
    with pytest.raises(StoreError):
        store.list_pending()
