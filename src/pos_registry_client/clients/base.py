from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any):
        headers = kwargs.pop("headers", None) or {}
        merged = {**self._auth_headers(), **headers}
        return self.http.request(method, path, headers=merged, **kwargs)


def unwrap(data: Any) -> Any:
    """Some endpoints wrap their body as {"data": ...}; accept both shapes."""
    if isinstance(data, dict) and set(data) <= {"data", "meta", "pagination"} and "data" in data:
        return data["data"]
    return data
