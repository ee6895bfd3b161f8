from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from catalog_sync.errors import ProtocolError, SupplierConnectionError, UpstreamError


RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}
AUTH_FAILURE_STATUSES = {401, 403}

logger = logging.getLogger(__name__)


class Throttle:
    """Enforces a minimum interval between consecutive calls to ``wait()``."""

    def __init__(self, interval_seconds: float) -> None:
        self.interval_seconds = max(0.0, interval_seconds)
        self._last_at: float | None = None

    def wait(self) -> None:
        if self.interval_seconds > 0 and self._last_at is not None:
            elapsed = time.monotonic() - self._last_at
            if elapsed < self.interval_seconds:
                time.sleep(self.interval_seconds - elapsed)
        self._last_at = time.monotonic()


class JsonHttp:
    """Thin JSON transport shared by the supplier clients.

    Retries timeouts, network errors and throttling/5xx statuses a bounded
    number of times. What survives the retries is mapped onto the sync error
    taxonomy: transport failures and 401/403 become ``SupplierConnectionError``,
    other non-2xx statuses ``UpstreamError``, unparsable bodies ``ProtocolError``.
    """

    def __init__(
        self,
        label: str,
        timeout_seconds: float = 30.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.label = label
        self.max_fetch_retries = max(0, max_fetch_retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.client = httpx.Client(
            timeout=timeout_seconds,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        attempts = self.max_fetch_retries + 1
        for attempt in range(attempts):
            try:
                response = self.client.request(method, url, params=params, json=json_body, headers=headers)
            except httpx.TransportError as exc:
                if attempt >= attempts - 1:
                    raise SupplierConnectionError(f"{self.label} transport failure for {url}: {exc}") from exc
                self._backoff(url, attempt, attempts, exc)
                continue

            if response.status_code in RETRYABLE_HTTP_STATUSES and attempt < attempts - 1:
                self._backoff(url, attempt, attempts, f"status {response.status_code}")
                continue

            self._raise_for_status(response)
            return response
        raise RuntimeError(f"Unreachable retry state for {url}")

    def request_json(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[Any, httpx.Response]:
        response = self.request(method, url, params=params, json_body=json_body, headers=headers)
        return decode_json(response, self.label), response

    def close(self) -> None:
        self.client.close()

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        body = (response.text or "")[:500]
        if status in AUTH_FAILURE_STATUSES:
            raise SupplierConnectionError(f"{self.label} rejected credentials: {status} {body}")
        raise UpstreamError(f"{self.label} API error", status_code=status, sub_message=body or None)

    def _backoff(self, url: str, attempt: int, attempts: int, reason: object) -> None:
        backoff = self.retry_backoff_seconds * (2**attempt)
        logger.debug("Retrying %s %s after %s, attempt %s/%s", self.label, url, reason, attempt + 1, attempts)
        if backoff > 0:
            time.sleep(backoff)


def decode_json(response: httpx.Response, label: str) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        raise ProtocolError(f"{label} returned malformed JSON from {response.request.url}: {exc}") from exc
