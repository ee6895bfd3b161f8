from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from catalog_sync.clients.base import ConnectionResult, Page, PageToken, SupplierClient, SupplierConnection
from catalog_sync.clients.http import JsonHttp, Throttle
from catalog_sync.errors import CatalogSyncError, ProtocolError


MAX_PAGE_SIZE = 250
FIRST_PAGE = ""

logger = logging.getLogger(__name__)


class ShopifyClient(SupplierClient):
    """Cursor-paginated REST catalog (Shopify Admin API).

    Page tokens are ``page_info`` cursors taken from the ``rel="next"`` entry
    of the ``Link`` response header; the empty string addresses the first page
    and ``None`` means there is no further page.
    """

    variant = "cursor_rest"

    def __init__(
        self,
        connection: SupplierConnection,
        api_version: str = "2024-01",
        page_size: int = MAX_PAGE_SIZE,
        page_delay_seconds: float = 0.5,
        timeout_seconds: float = 30.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.connection = connection
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        domain = connection.base_url.strip()
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        self.api_root = f"https://{domain.rstrip('/')}/admin/api/{api_version}"
        self.page_throttle = Throttle(page_delay_seconds)
        self.http = JsonHttp(
            "Shopify",
            timeout_seconds=timeout_seconds,
            max_fetch_retries=max_fetch_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            headers={
                "X-Shopify-Access-Token": connection.credential("access_token", "accessToken"),
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def test_connection(self) -> ConnectionResult:
        try:
            payload, _ = self.http.request_json("GET", self._url("shop.json"))
        except CatalogSyncError as exc:
            return ConnectionResult(ok=False, error=str(exc))
        shop = payload.get("shop") if isinstance(payload, dict) else None
        name = shop.get("name") if isinstance(shop, dict) else None
        return ConnectionResult(ok=True, identity=str(name or "Shopify Store"))

    def count_available(self) -> int:
        payload, _ = self.http.request_json("GET", self._url("products/count.json"))
        count = payload.get("count") if isinstance(payload, dict) else None
        if not isinstance(count, int):
            raise ProtocolError(f"Shopify count response has no integer count: {payload!r}"[:300])
        return count

    def first_token(self) -> PageToken:
        return FIRST_PAGE

    def fetch_page(self, token: PageToken) -> Page:
        params: dict[str, Any] = {"limit": self.page_size}
        if token:
            params["page_info"] = token

        self.page_throttle.wait()
        payload, response = self.http.request_json("GET", self._url("products.json"), params=params)
        products = self._products(payload)
        next_token = next_page_info(response)
        logger.debug("Shopify page fetched: %s products, next=%s", len(products), bool(next_token))
        return Page(records=products, next_token=next_token, has_more=next_token is not None)

    def skip_token(self, token: PageToken) -> PageToken:
        # the next cursor only exists on a successful response
        return None

    def fetch_detail(self, keys: Sequence[str]) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        ids = [str(key) for key in keys if str(key).strip()]
        for start in range(0, len(ids), self.page_size):
            chunk = ids[start : start + self.page_size]
            self.page_throttle.wait()
            payload, _ = self.http.request_json(
                "GET",
                self._url("products.json"),
                params={"ids": ",".join(chunk), "limit": self.page_size},
            )
            records.extend(self._products(payload))
        return records

    def close(self) -> None:
        self.http.close()

    def _url(self, endpoint: str) -> str:
        return f"{self.api_root}/{endpoint}"

    def _products(self, payload: Any) -> list[dict[str, Any]]:
        products = payload.get("products") if isinstance(payload, dict) else None
        if not isinstance(products, list):
            raise ProtocolError("Shopify products response has no products list")
        return products


def next_page_info(response: httpx.Response) -> str | None:
    link = response.links.get("next")
    if not link or not link.get("url"):
        return None
    values = parse_qs(urlparse(link["url"]).query).get("page_info")
    return values[0] if values else None
