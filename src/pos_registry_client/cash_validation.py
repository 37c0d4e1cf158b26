from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class CashValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class CashValidationResult:
    ok: bool
    issues: list[CashValidationIssue]
    amount: Decimal | None = None

    def text(self) -> str:
        return "; ".join(f"{issue.field}: {issue.reason}" for issue in self.issues)


def parse_amount(value: object) -> Decimal | None:
    """Operator input to Decimal; None for blank or unparseable input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        candidate = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        try:
            candidate = Decimal(raw)
        except InvalidOperation:
            return None
    if not candidate.is_finite():
        return None
    return candidate


def _require_amount(
    value: object,
    field: str,
    issues: list[CashValidationIssue],
    *,
    allow_zero: bool,
) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        issues.append(CashValidationIssue(field=field, reason="is required"))
        return None
    amount = parse_amount(value)
    if amount is None:
        issues.append(CashValidationIssue(field=field, reason="must be a number"))
        return None
    if allow_zero and amount < 0:
        issues.append(CashValidationIssue(field=field, reason="must be >= 0"))
        return None
    if not allow_zero and amount <= 0:
        issues.append(CashValidationIssue(field=field, reason="must be greater than 0"))
        return None
    return amount


def _require_non_empty(value: str | None, field: str, issues: list[CashValidationIssue]) -> None:
    if value is None or not value.strip():
        issues.append(CashValidationIssue(field=field, reason="is required"))


def validate_open_registry_payload(opening_cash: object) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    amount = _require_amount(opening_cash, "opening_cash", issues, allow_zero=True)
    return CashValidationResult(ok=not issues, issues=issues, amount=amount)


def validate_cash_transaction_payload(
    transaction_type: str | None,
    amount: object,
    reason: str | None,
) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    if transaction_type not in {"cash_in", "cash_out"}:
        issues.append(CashValidationIssue(field="transaction_type", reason="must be cash_in or cash_out"))
    parsed = _require_amount(amount, "amount", issues, allow_zero=False)
    _require_non_empty(reason, "reason", issues)
    return CashValidationResult(ok=not issues, issues=issues, amount=parsed)


def validate_close_registry_payload(actual_cash: object) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    amount = _require_amount(actual_cash, "actual_cash", issues, allow_zero=True)
    return CashValidationResult(ok=not issues, issues=issues, amount=amount)


def closing_notes_required(variance: Decimal, threshold: Decimal) -> bool:
    return abs(variance) > threshold
