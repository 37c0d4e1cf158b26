from __future__ import annotations

from dataclasses import dataclass

from .error_mapper import PENDING_REFUNDS_EXIST, REGISTRY_ALREADY_OPEN
from .exceptions import ApiError, AuthError, PermissionError, StoreError, TransportError

_CODE_MESSAGES = {
    REGISTRY_ALREADY_OPEN: "The registry is already open on another terminal.",
    PENDING_REFUNDS_EXIST: "Refunds awaiting approval must be resolved before closing the registry.",
}


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None
    retryable: bool = False


def to_user_facing_error(exc: Exception) -> UserFacingError:
    if isinstance(exc, StoreError):
        return UserFacingError(message="Device storage is unavailable.", details=str(exc))
    if not isinstance(exc, ApiError):
        return UserFacingError(message=str(exc) or "Unexpected error", details=type(exc).__name__)

    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    if isinstance(exc, TransportError):
        message = "The server could not be reached. Work is kept on this device."
    elif isinstance(exc, AuthError):
        message = "Your session has expired. Please sign in again."
    elif isinstance(exc, PermissionError):
        message = "You do not have permission for this action."
    else:
        message = _CODE_MESSAGES.get(exc.code) or exc.message.strip() or "Request failed"
    return UserFacingError(
        message=message,
        details=details,
        trace_id=exc.trace_id,
        retryable=isinstance(exc, TransportError) or exc.status_code >= 500,
    )
