from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_sync.clients.base import ConnectionResult
from catalog_sync.coordinator import BatchResult
from catalog_sync.errors import PersistenceError
from catalog_sync.models import CatalogProduct, Supplier, SyncRun
from catalog_sync.progress import SyncProgress
from catalog_sync.transform import CanonicalProduct


class CatalogRepository:
    """SQLAlchemy persistence for canonical products, keyed by (supplier_id, supplier_product_id).

    An admin-assigned ``category_id`` pins the stored category: syncs update
    every other column but leave ``category`` as it is.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_supplier(self, supplier_id: int) -> Supplier | None:
        return self.db.get(Supplier, supplier_id)

    def known_ids(self, supplier_id: int) -> set[str]:
        rows = self.db.execute(
            select(CatalogProduct.supplier_product_id).where(CatalogProduct.supplier_id == supplier_id)
        ).scalars()
        return set(rows)

    def save_one(self, product: CanonicalProduct, is_update: bool) -> CatalogProduct:
        try:
            row = self._find(product) if is_update else None
            if row is None:
                try:
                    row = self._insert(product)
                    self.db.commit()
                    return row
                except IntegrityError:
                    # stored since known_ids was read
                    self.db.rollback()
                    row = self._find(product)
                    if row is None:
                        raise
            _apply(row, product)
            self.db.commit()
            return row
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"Failed to save product {product.supplier_product_id}: {exc}") from exc

    def save_batch(self, products: Sequence[CanonicalProduct]) -> BatchResult:
        if not products:
            return BatchResult(created=0, updated=0)
        created = 0
        updated = 0
        try:
            existing = self._existing(products)
            for product in products:
                row = existing.get(product.key)
                if row is None:
                    existing[product.key] = self._insert(product)
                    created += 1
                else:
                    _apply(row, product)
                    updated += 1
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"Failed to save batch of {len(products)} products: {exc}") from exc
        return BatchResult(created=created, updated=updated)

    def record_connection_test(self, supplier_id: int, result: ConnectionResult) -> Supplier | None:
        supplier = self.get_supplier(supplier_id)
        if supplier is None:
            return None
        supplier.connection_status = "connected" if result.ok else "error"
        supplier.connection_error = result.error
        supplier.last_connection_test = datetime.now(timezone.utc)
        self.db.commit()
        return supplier

    def record_run(self, supplier_id: int, mode: str, progress: SyncProgress) -> SyncRun:
        run = SyncRun(
            supplier_id=supplier_id,
            mode=mode,
            status=progress.status,
            total_products=progress.total_products,
            fetched_products=progress.fetched_products,
            saved_products=progress.saved_products,
            created_products=progress.created_products,
            updated_products=progress.updated_products,
            errors=progress.errors,
            error_message=progress.error_message,
            started_at=progress.started_at or datetime.now(timezone.utc),
            finished_at=progress.completed_at,
        )
        self.db.add(run)

        supplier = self.get_supplier(supplier_id)
        if supplier is not None:
            supplier.total_products = self.db.execute(
                select(func.count(CatalogProduct.id)).where(CatalogProduct.supplier_id == supplier_id)
            ).scalar_one()
            if progress.status == "completed":
                supplier.last_synced_at = progress.completed_at
        self.db.commit()
        return run

    def recent_runs(self, supplier_id: int | None = None, limit: int = 20) -> list[SyncRun]:
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit)
        if supplier_id is not None:
            stmt = stmt.where(SyncRun.supplier_id == supplier_id)
        return list(self.db.execute(stmt).scalars())

    def _find(self, product: CanonicalProduct) -> CatalogProduct | None:
        return self.db.execute(
            select(CatalogProduct).where(
                CatalogProduct.supplier_id == product.supplier_id,
                CatalogProduct.supplier_product_id == product.supplier_product_id,
            )
        ).scalar_one_or_none()

    def _existing(self, products: Sequence[CanonicalProduct]) -> dict[tuple[int, str], CatalogProduct]:
        supplier_ids = {product.supplier_id for product in products}
        product_ids = {product.supplier_product_id for product in products}
        rows = self.db.execute(
            select(CatalogProduct).where(
                CatalogProduct.supplier_id.in_(supplier_ids),
                CatalogProduct.supplier_product_id.in_(product_ids),
            )
        ).scalars()
        return {(row.supplier_id, row.supplier_product_id): row for row in rows}

    def _insert(self, product: CanonicalProduct) -> CatalogProduct:
        row = CatalogProduct(supplier_id=product.supplier_id, supplier_product_id=product.supplier_product_id)
        _apply(row, product)
        self.db.add(row)
        self.db.flush()
        return row


def _apply(row: CatalogProduct, product: CanonicalProduct) -> None:
    row.supplier_sku = product.supplier_sku
    row.title = product.title
    row.description = product.description
    if row.category_id is None:
        row.category = product.category
    row.tags = list(product.tags)
    row.images = [asdict(image) for image in product.images]
    row.variants = [asdict(variant) for variant in product.variants]
    row.supplier_price = Decimal(str(product.supplier_price))
    row.merchant_price = Decimal(str(product.merchant_price))
    row.inventory_quantity = product.inventory_quantity
    row.status = product.status
    row.is_global = product.is_global
    row.sync_status = product.sync_status
    row.last_synced_at = product.last_synced_at
