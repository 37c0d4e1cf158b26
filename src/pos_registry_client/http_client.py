from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import TransportError

TRACE_HEADER = "X-Trace-ID"
IDEMPOTENCY_HEADER = "Idempotency-Key"

ResponseHook = Callable[[requests.Response], None]
JsonPayload = dict[str, Any] | list[Any] | None


@dataclass
class TraceContext:
    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def adopt(self, headers: Mapping[str, str], payload: object = None) -> None:
        """Prefer the server's trace id so support can follow one request end to end."""
        header_value = headers.get(TRACE_HEADER)
        if header_value:
            self.trace_id = header_value
            return
        if isinstance(payload, Mapping):
            payload_value = payload.get("trace_id")
            if isinstance(payload_value, str) and payload_value:
                self.trace_id = payload_value


@dataclass
class LastOperation:
    method: str
    path: str
    operation: str
    duration_ms: int
    result: str
    trace_id: str | None


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext | None = None
    session: requests.Session | None = None
    after_response: ResponseHook | None = None
    last_operation: LastOperation | None = None

    def __post_init__(self) -> None:
        if self.trace is None:
            self.trace = TraceContext()
        if self.session is None:
            self.session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_connections,
                pool_maxsize=self.config.max_connections,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def _build_url(self, path: str) -> str:
        base = self.config.api_base_url.rstrip("/") + "/"
        return urljoin(base, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        operation: str = "unknown",
    ) -> JsonPayload:
        if self.session is None:
            raise RuntimeError("HTTP session not initialized")
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        trace_id = self.trace.ensure()
        request_headers[TRACE_HEADER] = trace_id

        normalized_method = method.upper()
        url = self._build_url(path)
        # Mutations are retried by the outbox, which owns the idempotency key.
        can_retry = normalized_method in {"GET", "HEAD"}
        attempts = self.config.retries + 1 if can_retry else 1

        started = time.monotonic()
        response: requests.Response | None = None
        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=normalized_method,
                    url=url,
                    headers=request_headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if attempt >= attempts - 1:
                    self._record(normalized_method, path, operation, started, "transport_error")
                    raise TransportError(
                        code="NETWORK_ERROR",
                        message=str(exc) or "Network request failed",
                        details={"type": type(exc).__name__},
                        trace_id=trace_id,
                        status_code=0,
                        raw_payload=None,
                    ) from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            time.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError(f"HTTP request to {path} finished without a response")

        if self.after_response:
            self.after_response(response)

        if response.ok:
            parsed = response.json() if response.content else None
            self.trace.adopt(response.headers, parsed)
            self._record(normalized_method, path, operation, started, "success")
            return parsed

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            payload = {"message": response.text}
        self.trace.adopt(response.headers, payload)
        self._record(normalized_method, path, operation, started, "error")
        raise map_error(
            response.status_code,
            payload if isinstance(payload, dict) else {"message": str(payload)},
            self.trace.trace_id,
        )

    def probe(self, path: str, *, timeout_seconds: float, params: dict[str, Any] | None = None) -> int:
        """One bounded HEAD round-trip; returns the status code of whatever answered."""
        if self.session is None:
            raise RuntimeError("HTTP session not initialized")
        try:
            response = self.session.request(
                method="HEAD",
                url=self._build_url(path),
                params=params,
                headers={"Cache-Control": "no-store"},
                timeout=timeout_seconds,
                verify=self.config.verify_ssl,
            )
        except requests.RequestException as exc:
            raise TransportError(
                code="NETWORK_ERROR",
                message=str(exc) or "Connectivity probe failed",
                details={"type": type(exc).__name__},
                trace_id=None,
                status_code=0,
                raw_payload=None,
            ) from exc
        return response.status_code

    def _record(self, method: str, path: str, operation: str, started: float, result: str) -> None:
        self.last_operation = LastOperation(
            method=method,
            path=path,
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            trace_id=self.trace.trace_id if self.trace else None,
        )
