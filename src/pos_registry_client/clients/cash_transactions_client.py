from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..idempotency import idempotency_headers
from ..models_cash import CashTransaction, CashTransactionListResponse, CashTransactionRequest
from .base import BaseClient, unwrap

CASH_TRANSACTIONS_PATH = "/api/cash-transactions"


@dataclass
class CashTransactionsClient(BaseClient):
    """Append-only ledger: entries are created and listed, never edited."""

    def create(self, payload: CashTransactionRequest | Mapping[str, Any], *, idempotency_key: str) -> dict[str, Any]:
        request = payload if isinstance(payload, CashTransactionRequest) else CashTransactionRequest.model_validate(payload)
        data = self._request(
            "POST",
            CASH_TRANSACTIONS_PATH,
            json_body=request.to_wire(),
            headers=idempotency_headers(idempotency_key),
            operation="cash_transactions.create",
        )
        return data if isinstance(data, dict) else {}

    def list_for_session(self, registry_session_id: int) -> CashTransactionListResponse:
        data = unwrap(
            self._request(
                "GET",
                CASH_TRANSACTIONS_PATH,
                params={"registrySessionId": registry_session_id},
                operation="cash_transactions.list",
            )
        )
        if isinstance(data, list):
            rows = [CashTransaction.model_validate(row) for row in data]
            return CashTransactionListResponse(rows=rows, total=len(rows))
        if isinstance(data, dict):
            return CashTransactionListResponse.model_validate(data)
        raise ValueError("Expected cash transactions response to be a JSON list or object")
