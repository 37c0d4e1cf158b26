from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from .models import WireModel

CashTransactionType = Literal["cash_in", "cash_out"]


class CashTransactionRequest(WireModel):
    registry_session_id: int
    cashier_id: int
    transaction_type: CashTransactionType
    amount: Decimal = Field(gt=0)
    reason: str = Field(min_length=1)
    reference: str | None = None
    notes: str | None = None


class CashTransaction(WireModel):
    id: int | str
    registry_session_id: int | None = None
    cashier_id: int | None = None
    transaction_type: CashTransactionType
    amount: Decimal
    reason: str | None = None
    reference: str | None = None
    notes: str | None = None
    cashier_name: str | None = None
    created_at: datetime | None = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.transaction_type == "cash_in" else -self.amount


class CashTransactionListResponse(WireModel):
    rows: list[CashTransaction] = Field(default_factory=list)
    total: int = 0
