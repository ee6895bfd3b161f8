from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from catalog_sync.clients.base import ConnectionResult, Page, PageToken, SupplierClient, SupplierConnection
from catalog_sync.clients.http import JsonHttp, Throttle
from catalog_sync.clients.signing import signed_headers
from catalog_sync.errors import CatalogSyncError, ProtocolError, UpstreamError


LIST_URI = "/b2b-overseas-api/v1/buyer/product/skus/v1"
DETAIL_URI = "/b2b-overseas-api/v1/buyer/product/detailInfo/v1"
PRICE_URI = "/b2b-overseas-api/v1/buyer/product/price/v1"

MAX_PAGE_SIZE = 1000
MAX_PRICE_BATCH = 200

logger = logging.getLogger(__name__)


class GigaB2BClient(SupplierClient):
    """Signed, page-numbered RPC catalog.

    Every call is a POST signed with the connection's client id and secret.
    A listing page only carries SKUs; ``fetch_page`` resolves them into full
    records through the detail and price endpoints.
    """

    variant = "signed_rpc"

    def __init__(
        self,
        connection: SupplierConnection,
        page_size: int = MAX_PAGE_SIZE,
        price_batch_size: int = MAX_PRICE_BATCH,
        price_batch_delay_seconds: float = 1.1,
        timeout_seconds: float = 30.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.connection = connection
        self.client_id = connection.credential("client_id", "clientId")
        self.client_secret = connection.credential("client_secret", "clientSecret")
        self.base_url = connection.base_url.rstrip("/")
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self.price_batch_size = max(1, min(price_batch_size, MAX_PRICE_BATCH))
        self.price_throttle = Throttle(price_batch_delay_seconds)
        self.http = JsonHttp(
            "GigaB2B",
            timeout_seconds=timeout_seconds,
            max_fetch_retries=max_fetch_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def test_connection(self) -> ConnectionResult:
        try:
            self._list_skus(1, 1)
        except CatalogSyncError as exc:
            return ConnectionResult(ok=False, error=str(exc))
        return ConnectionResult(ok=True, identity=f"GigaB2B buyer {self.client_id}")

    def count_available(self) -> int:
        data = self._list_skus(1, 1)
        return _to_count(data.get("total"))

    def first_token(self) -> PageToken:
        return 1

    def fetch_page(self, token: PageToken) -> Page:
        page_num = int(token or 1)
        data = self._list_skus(page_num, self.page_size)
        skus = _listed_skus(data.get("list"))
        total_pages = _to_count(data.get("totalPages"))
        has_more = page_num < total_pages
        records = self.fetch_detail(skus) if skus else []
        logger.debug("GigaB2B page %s/%s: %s skus, %s records", page_num, total_pages, len(skus), len(records))
        return Page(
            records=records,
            next_token=page_num + 1 if has_more else None,
            has_more=has_more,
            total_pages=total_pages,
            total=_to_count(data.get("total")),
            listed=len(skus),
            unresolved=len(set(skus)) - len({record["sku"] for record in records}),
        )

    def skip_token(self, token: PageToken) -> PageToken:
        return int(token or 1) + 1

    def fetch_detail(self, keys: Sequence[str]) -> list[dict[str, Any]]:
        """Detail records for ``keys`` merged with their price records, in key order."""
        skus = [str(key).strip() for key in keys if str(key).strip()]
        details: dict[str, dict[str, Any]] = {}
        prices: dict[str, dict[str, Any]] = {}
        for start in range(0, len(skus), self.price_batch_size):
            batch = skus[start : start + self.price_batch_size]
            details.update(_index_by_sku(self._call(DETAIL_URI, {"skus": batch})))
            self.price_throttle.wait()
            prices.update(_index_by_sku(self._call(PRICE_URI, {"skus": batch})))

        records: list[dict[str, Any]] = []
        for sku in skus:
            detail = details.get(sku)
            if detail is None:
                logger.warning("GigaB2B returned no detail for sku %s", sku)
                continue
            records.append({**detail, **prices.get(sku, {}), "sku": sku})
        return records

    def close(self) -> None:
        self.http.close()

    def _list_skus(self, page_num: int, page_size: int) -> dict[str, Any]:
        data = self._call(LIST_URI, {"pageNum": page_num, "pageSize": page_size})
        if not isinstance(data, dict):
            raise ProtocolError("GigaB2B listing response data is not an object")
        return data

    def _call(self, uri: str, body: dict[str, Any]) -> Any:
        headers = signed_headers(self.client_id, self.client_secret, uri)
        payload, _ = self.http.request_json("POST", f"{self.base_url}{uri}", json_body=body, headers=headers)
        return unwrap_envelope(payload)


def unwrap_envelope(payload: Any) -> Any:
    if not isinstance(payload, dict) or "success" not in payload:
        raise ProtocolError("GigaB2B response is not a result envelope")
    if payload.get("success") is not True:
        code = payload.get("code")
        raise UpstreamError(
            str(payload.get("msg") or "GigaB2B request failed"),
            code=str(code) if code is not None else None,
            sub_message=payload.get("subMsg"),
        )
    return payload.get("data")


def _listed_skus(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ProtocolError("GigaB2B listing response has no SKU list")
    skus: list[str] = []
    for item in raw:
        sku = item.get("sku") if isinstance(item, dict) else item
        if sku is not None and str(sku).strip():
            skus.append(str(sku).strip())
    return skus


def _index_by_sku(data: Any) -> dict[str, dict[str, Any]]:
    if data is None:
        return {}
    if not isinstance(data, list):
        raise ProtocolError("GigaB2B batch response data is not a list")
    return {str(item["sku"]).strip(): item for item in data if isinstance(item, dict) and item.get("sku")}


def _to_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
