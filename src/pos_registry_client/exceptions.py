from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """Authentication failed or the session token expired."""


class PermissionError(ForbiddenError):
    """The operator lacks the permission for this action."""


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class RegistryAlreadyOpenError(ConflictError):
    """Another cashier already opened the shared registry."""


@dataclass
class PendingRefundsError(ValidationError):
    pending_refunds: list[dict] = field(default_factory=list)


class StoreError(RuntimeError):
    """The on-device store could not be read or written."""


def is_transient(exc: Exception) -> bool:
    """Whether a failed request may succeed later without anyone changing it."""
    if isinstance(exc, (TransportError, ServerError, RateLimitError, AuthError)):
        return True
    if isinstance(exc, ApiError):
        return exc.status_code <= 0 or exc.status_code >= 500
    return False
