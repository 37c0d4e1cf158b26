from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import Field

from .models import WireModel

ZERO = Decimal("0")


class RegistryStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class VarianceKind(str, Enum):
    OVER = "over"
    SHORT = "short"
    MATCH = "match"

    @property
    def label(self) -> str:
        return {
            VarianceKind.OVER: "cash over",
            VarianceKind.SHORT: "cash short",
            VarianceKind.MATCH: "perfect match",
        }[self]


def classify_variance(variance: Decimal) -> VarianceKind:
    if variance > 0:
        return VarianceKind.OVER
    if variance < 0:
        return VarianceKind.SHORT
    return VarianceKind.MATCH


def compute_expected_cash(
    opening_cash: Decimal,
    cash_payments: Decimal,
    cash_in: Decimal,
    cash_out: Decimal,
    cash_refunds: Decimal,
) -> Decimal:
    return opening_cash + cash_payments + cash_in - cash_out - cash_refunds


class RegistrySession(WireModel):
    id: int
    session_number: str | None = None
    session_date: date | None = None
    status: RegistryStatus = RegistryStatus.OPEN
    opening_cash: Decimal = ZERO
    cash_payments: Decimal = ZERO
    cash_in: Decimal = ZERO
    cash_out: Decimal = ZERO
    cash_refunds: Decimal = ZERO
    closing_cash: Decimal | None = None
    actual_cash: Decimal | None = None
    variance: Decimal | None = None
    opened_by: int | None = None
    closed_by: int | None = None
    opener_name: str | None = None
    cashier_count: int = 0
    total_orders: int = 0
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    closing_notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is RegistryStatus.OPEN

    @property
    def expected_cash(self) -> Decimal:
        """Recomputed from the running totals; the stored closing_cash may predate late syncs."""
        return compute_expected_cash(
            self.opening_cash,
            self.cash_payments,
            self.cash_in,
            self.cash_out,
            self.cash_refunds,
        )

    def variance_for(self, actual_cash: Decimal) -> Decimal:
        return actual_cash - self.expected_cash


class OpenRegistryRequest(WireModel):
    opened_by: int
    opening_cash: Decimal = Field(ge=0)
    notes: str | None = None


class CloseRegistryRequest(WireModel):
    closed_by: int
    actual_cash: Decimal = Field(ge=0)
    closing_notes: str | None = None


class PendingRefund(WireModel):
    id: int | None = None
    refund_number: str | None = None
    reason: str | None = None
    refund_method: str | None = None
    amount: Decimal | None = None
    cash_given: bool = False
    status: str | None = None
    registry_session_id: int | None = None
