from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..idempotency import idempotency_headers
from .base import BaseClient

ORDERS_PATH = "/api/orders"
REFUNDS_PATH = "/api/refunds"


@dataclass
class OrdersClient(BaseClient):
    # Order and refund bodies are owned by the checkout screens; they pass through untouched.

    def create_order(self, payload: Mapping[str, Any], *, idempotency_key: str) -> dict[str, Any]:
        data = self._request(
            "POST",
            ORDERS_PATH,
            json_body=dict(payload),
            headers=idempotency_headers(idempotency_key),
            operation="orders.create",
        )
        return data if isinstance(data, dict) else {}

    def create_refund(self, payload: Mapping[str, Any], *, idempotency_key: str) -> dict[str, Any]:
        data = self._request(
            "POST",
            REFUNDS_PATH,
            json_body=dict(payload),
            headers=idempotency_headers(idempotency_key),
            operation="refunds.create",
        )
        return data if isinstance(data, dict) else {}
