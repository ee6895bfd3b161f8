from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from catalog_sync.clients.base import Page, PageToken, SupplierClient
from catalog_sync.errors import (
    PAGE_SCOPED_ERRORS,
    CatalogSyncError,
    ProtocolError,
    SupplierConnectionError,
    SyncCancelled,
    TransformError,
    UpstreamError,
)
from catalog_sync.progress import ProgressTracker, SyncProgress
from catalog_sync.transform import CanonicalProduct, ProductTransformer


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchResult:
    created: int
    updated: int


class PersistenceStrategy(ABC):
    mode: str

    @abstractmethod
    def persist(self, products: Sequence[CanonicalProduct], tracker: ProgressTracker) -> None:
        raise NotImplementedError


class StreamingUpsert(PersistenceStrategy):
    """Saves one product at a time; a failing product costs one error."""

    mode = "streaming"

    def __init__(self, save_one: Callable[[CanonicalProduct, bool], Any], known_ids: Iterable[str]) -> None:
        self.save_one = save_one
        self.known_ids = set(known_ids)

    def persist(self, products: Sequence[CanonicalProduct], tracker: ProgressTracker) -> None:
        for product in products:
            is_update = product.supplier_product_id in self.known_ids
            try:
                self.save_one(product, is_update)
            except Exception as exc:
                logger.warning("Failed to save product %s: %s", product.supplier_product_id, exc)
                tracker.add(errors=1)
                continue
            self.known_ids.add(product.supplier_product_id)
            if is_update:
                tracker.add(saved_products=1, updated_products=1)
            else:
                tracker.add(saved_products=1, created_products=1)


class BatchUpsert(PersistenceStrategy):
    """Saves a whole page in one call; a failing call costs one error per product."""

    mode = "batch"

    def __init__(self, save_batch: Callable[[Sequence[CanonicalProduct]], BatchResult]) -> None:
        self.save_batch = save_batch

    def persist(self, products: Sequence[CanonicalProduct], tracker: ProgressTracker) -> None:
        if not products:
            return
        try:
            result = self.save_batch(products)
        except Exception as exc:
            logger.warning("Failed to save batch of %s products: %s", len(products), exc)
            tracker.add(errors=len(products))
            return
        tracker.add(
            saved_products=result.created + result.updated,
            created_products=result.created,
            updated_products=result.updated,
        )


class SyncCoordinator:
    """Drives one full catalog sync for one supplier connection.

    Pages are fetched strictly in order. A page that fails with an upstream,
    protocol or transform error is counted and skipped; only failures that
    escape the page loop (auth, transport, a broken cursor chain, cancellation)
    end the run in ``error``. Runs that finish the loop are ``completed`` even
    when ``errors > 0``.
    """

    def __init__(
        self,
        client: SupplierClient,
        transformer: ProductTransformer,
        supplier_id: int,
        tracker: ProgressTracker | None = None,
        max_consecutive_page_errors: int = 5,
    ) -> None:
        self.client = client
        self.transformer = transformer
        self.supplier_id = supplier_id
        self.tracker = tracker or ProgressTracker()
        self.max_consecutive_page_errors = max(1, max_consecutive_page_errors)

    def run(self, strategy: PersistenceStrategy, cancel: threading.Event | None = None) -> SyncProgress:
        self.tracker.start()
        logger.info("Sync started for supplier %s (%s, %s)", self.supplier_id, self.client.variant, strategy.mode)
        try:
            self._check_connection()
            self._count_available()
            self._page_loop(strategy, cancel)
        except CatalogSyncError as exc:
            logger.error("Sync failed for supplier %s: %s", self.supplier_id, exc)
            return self.tracker.fail(str(exc))
        except Exception as exc:
            logger.exception("Sync crashed for supplier %s", self.supplier_id)
            return self.tracker.fail(str(exc))

        progress = self.tracker.complete()
        logger.info(
            "Sync completed for supplier %s: fetched=%s saved=%s created=%s updated=%s errors=%s",
            self.supplier_id,
            progress.fetched_products,
            progress.saved_products,
            progress.created_products,
            progress.updated_products,
            progress.errors,
        )
        return progress

    def refresh(self, keys: Sequence[str], strategy: PersistenceStrategy) -> SyncProgress:
        """Re-sync specific products through the detail endpoint."""
        self.tracker.start()
        self.tracker.update(total_products=len(keys))
        try:
            records = self.client.fetch_detail(keys)
            self.tracker.add(fetched_products=len(records))
            strategy.persist(self._transform(records), self.tracker)
        except PAGE_SCOPED_ERRORS as exc:
            logger.warning("Refresh of %s products failed for supplier %s: %s", len(keys), self.supplier_id, exc)
            self.tracker.add(errors=1)
        except CatalogSyncError as exc:
            logger.error("Refresh failed for supplier %s: %s", self.supplier_id, exc)
            return self.tracker.fail(str(exc))
        except Exception as exc:
            logger.exception("Refresh crashed for supplier %s", self.supplier_id)
            return self.tracker.fail(str(exc))
        return self.tracker.complete()

    def _check_connection(self) -> None:
        result = self.client.test_connection()
        if not result.ok:
            raise SupplierConnectionError(result.error or "connection test failed")
        logger.info("Connected to supplier %s as %s", self.supplier_id, result.identity)

    def _count_available(self) -> None:
        try:
            total = self.client.count_available()
        except (UpstreamError, ProtocolError) as exc:
            logger.warning("Product count unavailable for supplier %s: %s", self.supplier_id, exc)
            return
        self.tracker.update(total_products=max(0, total))

    def _page_loop(self, strategy: PersistenceStrategy, cancel: threading.Event | None) -> None:
        token = self.client.first_token()
        page_number = 0
        total_pages: int | None = None
        consecutive_errors = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise SyncCancelled()
            page_number += 1
            self.tracker.update(current_page=page_number, cursor=_cursor_text(token))

            try:
                page = self.client.fetch_page(token)
            except PAGE_SCOPED_ERRORS as exc:
                consecutive_errors += 1
                self.tracker.add(errors=1)
                logger.warning("Page %s failed for supplier %s: %s", page_number, self.supplier_id, exc)
                if consecutive_errors >= self.max_consecutive_page_errors:
                    raise
                next_token = self.client.skip_token(token)
                if next_token is None:
                    raise
                if total_pages and isinstance(next_token, int) and next_token > total_pages:
                    return
                token = next_token
                continue

            consecutive_errors = 0
            if page.total_pages:
                total_pages = page.total_pages
            self._record_page(page, strategy)

            if not page.listed_count or not page.has_more or page.next_token is None:
                return
            token = page.next_token

    def _record_page(self, page: Page, strategy: PersistenceStrategy) -> None:
        if page.total and not self.tracker.snapshot().total_products:
            self.tracker.update(total_products=page.total)
        self.tracker.add(fetched_products=len(page.records))
        if page.unresolved:
            logger.warning("%s listed products could not be resolved for supplier %s", page.unresolved, self.supplier_id)
            self.tracker.add(errors=page.unresolved)

        try:
            products = self._transform(page.records)
        except TransformError as exc:
            logger.warning("Page of %s records failed to transform: %s", len(page.records), exc)
            self.tracker.add(errors=1)
            return
        strategy.persist(products, self.tracker)

    def _transform(self, records: Sequence[dict[str, Any]]) -> list[CanonicalProduct]:
        try:
            return [
                self.transformer.to_canonical(record, self.supplier_id)
                for record in records
                if self.transformer.accepts(record)
            ]
        except TransformError:
            raise
        except Exception as exc:
            raise TransformError(f"Unexpected record shape: {exc}") from exc


def _cursor_text(token: PageToken) -> str | None:
    if token is None or token == "":
        return None
    return str(token)
