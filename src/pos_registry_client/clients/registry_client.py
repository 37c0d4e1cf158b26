from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..exceptions import NotFoundError
from ..models_registry import (
    CloseRegistryRequest,
    OpenRegistryRequest,
    PendingRefund,
    RegistrySession,
)
from .base import BaseClient, unwrap

CURRENT_SESSION_PATH = "/api/registry-sessions/current"
SESSIONS_PATH = "/api/registry-sessions"
REFUNDS_PATH = "/api/refunds"


@dataclass
class RegistryClient(BaseClient):
    def get_current_session(self) -> RegistrySession | None:
        """The single global open session, or None when the server says there is none."""
        try:
            data = self._request("GET", CURRENT_SESSION_PATH, operation="registry.current")
        except NotFoundError:
            return None
        data = unwrap(data)
        if not data:
            return None
        if not isinstance(data, dict):
            raise ValueError("Expected current registry session response to be a JSON object")
        return RegistrySession.model_validate(data)

    def open_session(self, opened_by: int, opening_cash: Decimal, notes: str | None = None) -> RegistrySession:
        request = OpenRegistryRequest(opened_by=opened_by, opening_cash=opening_cash, notes=notes)
        data = unwrap(
            self._request("POST", SESSIONS_PATH, json_body=request.to_wire(), operation="registry.open")
        )
        if not isinstance(data, dict):
            raise ValueError("Expected open registry response to be a JSON object")
        return RegistrySession.model_validate(data)

    def close_session(
        self,
        session_id: int,
        *,
        closed_by: int,
        actual_cash: Decimal,
        closing_notes: str | None = None,
    ) -> RegistrySession:
        request = CloseRegistryRequest(closed_by=closed_by, actual_cash=actual_cash, closing_notes=closing_notes)
        data = unwrap(
            self._request(
                "PUT",
                SESSIONS_PATH,
                params={"id": session_id},
                json_body=request.to_wire(),
                operation="registry.close",
            )
        )
        if not isinstance(data, dict):
            raise ValueError("Expected close registry response to be a JSON object")
        return RegistrySession.model_validate(data)

    def list_pending_refunds(self, session_id: int) -> list[PendingRefund]:
        data = unwrap(
            self._request(
                "GET",
                REFUNDS_PATH,
                params={"status": "pending", "registrySessionId": session_id},
                operation="refunds.pending",
            )
        )
        rows = data if isinstance(data, list) else []
        refunds = [PendingRefund.model_validate(row) for row in rows if isinstance(row, dict)]
        # Older servers ignore the session filter.
        return [
            refund
            for refund in refunds
            if refund.registry_session_id in (None, session_id)
        ]
