from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, TypeVar

from dotenv import load_dotenv

PREFIX = "POS_"

T = TypeVar("T", int, float, Decimal)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    probe_timeout_seconds: float = 3.0
    sync_backoff_seconds: float = 5.0
    sync_max_backoff_seconds: float = 300.0
    variance_notes_threshold: Decimal = Decimal("1000")
    refresh_min_interval_seconds: float = 2.0
    store_path: str | None = None


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(raw) from exc
    if not value.is_finite():
        raise ValueError(raw)
    return value


_KINDS: dict[type, tuple[Callable[[str], object], str]] = {
    int: (int, "an integer"),
    float: (float, "a number"),
    Decimal: (_parse_decimal, "a decimal amount"),
}


def _read(name: str, default: T, *, minimum: T | None = None, strict: bool = False) -> T:
    """Read POS_<name>, enforcing a lower bound (strict means the bound itself is invalid)."""
    key = f"{PREFIX}{name}"
    raw = os.getenv(key)
    kind = type(default)
    parse, expectation = _KINDS[kind]
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = parse(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid {key}: expected {expectation}, got {raw!r}") from exc
    if minimum is not None:
        too_low = value <= minimum if strict else value < minimum
        if too_low:
            bound = ">" if strict else ">="
            raise ConfigError(f"Invalid {key}: expected {bound} {minimum}, got {value}")
    return value


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv(f"{PREFIX}ENV") or "dev").strip()
    api_base_url = (
        (os.getenv(f"{PREFIX}API_BASE_URL_{env_name.upper()}") or "").strip()
        or (os.getenv(f"{PREFIX}API_BASE_URL") or "").strip()
    )
    if not api_base_url:
        raise ConfigError(f"Missing required config values: {PREFIX}API_BASE_URL")

    timeout_seconds = _read("TIMEOUT_SECONDS", 10.0, minimum=0.0, strict=True)
    connect_timeout_seconds = _read("CONNECT_TIMEOUT_SECONDS", min(timeout_seconds, 5.0), minimum=0.0, strict=True)
    sync_backoff_seconds = _read("SYNC_BACKOFF_SECONDS", 5.0, minimum=0.0)

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=_read(
            "READ_TIMEOUT_SECONDS",
            max(timeout_seconds, connect_timeout_seconds),
            minimum=0.0,
            strict=True,
        ),
        retries=_read("RETRIES", 3, minimum=0),
        retry_backoff_seconds=_read("RETRY_BACKOFF_SECONDS", 0.3, minimum=0.0),
        max_connections=_read("MAX_CONNECTIONS", 20, minimum=1),
        verify_ssl=_coerce_bool(os.getenv(f"{PREFIX}VERIFY_SSL"), True),
        # Kept short: restore and close both wait on this probe.
        probe_timeout_seconds=_read("PROBE_TIMEOUT_SECONDS", 3.0, minimum=0.0, strict=True),
        sync_backoff_seconds=sync_backoff_seconds,
        sync_max_backoff_seconds=_read("SYNC_MAX_BACKOFF_SECONDS", 300.0, minimum=sync_backoff_seconds),
        variance_notes_threshold=_read("VARIANCE_NOTES_THRESHOLD", Decimal("1000"), minimum=Decimal("0")),
        refresh_min_interval_seconds=_read("REFRESH_MIN_INTERVAL_SECONDS", 2.0, minimum=0.0),
        store_path=(os.getenv(f"{PREFIX}STORE_PATH") or "").strip() or None,
    )
