from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads exchanged with the POS API, which speaks camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)



class PosUser(WireModel):
    id: int
    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CashierPermissions(WireModel):
    can_apply_discount: bool = False
    max_discount_percent: Decimal = Decimal("0")
    can_edit_prices: bool = False
    can_void_orders: bool = False
    can_process_refunds: bool = False
    can_open_registry: bool = False
    can_close_registry: bool = False
    can_view_reports: bool = False
    can_update_stock: bool = False


class OperationType(str, Enum):
    ORDER = "order"
    CASH_TRANSACTION = "cash_transaction"
    REFUND = "refund"


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class PendingSyncOperation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    seq: int = 0
    operation_type: OperationType
    payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str
    created_at: datetime
    attempts: int = 0
    last_error: str | None = None
    last_error_kind: FailureKind | None = None
    next_attempt_at: datetime | None = None

    @property
    def needs_review(self) -> bool:
        # Rejected by the server as invalid: retrying unchanged will not help, a person must decide.
        return self.last_error_kind is FailureKind.PERMANENT

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now


class PendingSyncCount(BaseModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)

    def count(self, operation_type: OperationType | str) -> int:
        key = operation_type.value if isinstance(operation_type, OperationType) else operation_type
        return self.by_type.get(key, 0)
