from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone

from .http_client import IDEMPOTENCY_HEADER


def new_operation_id() -> str:
    return str(uuid.uuid4())


def new_idempotency_key(operation_type: str) -> str:
    """Client-generated key the server uses to collapse replays of one operation."""
    normalized = operation_type.strip().lower().replace(" ", "-").replace("_", "-")
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"pos-{normalized}-{ts}-{secrets.token_hex(8)}"


def idempotency_headers(idempotency_key: str) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: idempotency_key}
