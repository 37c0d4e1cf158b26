from __future__ import annotations

from typing import Mapping

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    NotFoundError,
    PendingRefundsError,
    PermissionError,
    RateLimitError,
    RegistryAlreadyOpenError,
    ServerError,
    ValidationError,
)

REGISTRY_ALREADY_OPEN = "REGISTRY_ALREADY_OPEN"
PENDING_REFUNDS_EXIST = "PENDING_REFUNDS_EXIST"


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    payload = payload or {}
    code = str(payload.get("code") or "HTTP_ERROR")
    # The POS API reports human text under "error"; older handlers use "message".
    message = str(payload.get("message") or payload.get("error") or "Request failed")
    details = payload.get("details")
    payload_trace_id = payload.get("trace_id")
    resolved_trace_id = str(payload_trace_id) if payload_trace_id is not None else trace_id

    if code == PENDING_REFUNDS_EXIST:
        refunds = payload.get("pendingRefunds") or []
        return PendingRefundsError(
            code=code,
            message=message,
            details=details,
            trace_id=resolved_trace_id,
            status_code=status_code,
            raw_payload=dict(payload),
            pending_refunds=[dict(item) for item in refunds if isinstance(item, Mapping)],
        )

    mapped: type[ApiError]
    if code == REGISTRY_ALREADY_OPEN:
        mapped = RegistryAlreadyOpenError
    elif status_code in {401}:
        mapped = AuthError
    elif status_code in {403}:
        mapped = PermissionError
    elif status_code in {404}:
        mapped = NotFoundError
    elif status_code in {400, 422}:
        mapped = ValidationError
    elif status_code == 409:
        mapped = ConflictError
    elif status_code == 429:
        mapped = RateLimitError
    elif status_code >= 500:
        mapped = ServerError
    else:
        mapped = ApiError
    return mapped(
        code=code,
        message=message,
        details=details,
        trace_id=resolved_trace_id,
        status_code=status_code,
        raw_payload=dict(payload),
    )
