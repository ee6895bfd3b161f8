from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from catalog_sync.db import Base


JsonDict = dict[str, object]
JsonList = list[object]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128))
    variant: Mapped[str] = mapped_column(String(32), index=True)
    base_url: Mapped[str] = mapped_column(Text)
    credentials: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    price_markup: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=Decimal("1.000"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    connection_status: Mapped[str | None] = mapped_column(String(32))
    connection_error: Mapped[str | None] = mapped_column(Text)
    last_connection_test: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_products: Mapped[int] = mapped_column(Integer, default=0)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    products: Mapped[list[CatalogProduct]] = relationship(back_populates="supplier")
    sync_runs: Mapped[list[SyncRun]] = relationship(back_populates="supplier")


class CatalogProduct(Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("supplier_id", "supplier_product_id", name="uq_supplier_product"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), index=True)
    supplier_product_id: Mapped[str] = mapped_column(String(256))
    supplier_sku: Mapped[str] = mapped_column(String(256), index=True, default="")
    title: Mapped[str] = mapped_column(String(512), index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(256), default="Uncategorized")
    # set by an admin; syncs leave ``category`` alone while it is present
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[JsonList] = mapped_column(JSON, default=list)
    images: Mapped[JsonList] = mapped_column(JSON, default=list)
    variants: Mapped[JsonList] = mapped_column(JSON, default=list)
    supplier_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    merchant_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    inventory_quantity: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="active")
    is_global: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_status: Mapped[str] = mapped_column(String(16), default="synced")
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    supplier: Mapped[Supplier] = relationship(back_populates="products")


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), index=True)
    mode: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(32), index=True)
    total_products: Mapped[int] = mapped_column(Integer, default=0)
    fetched_products: Mapped[int] = mapped_column(Integer, default=0)
    saved_products: Mapped[int] = mapped_column(Integer, default=0)
    created_products: Mapped[int] = mapped_column(Integer, default=0)
    updated_products: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    supplier: Mapped[Supplier] = relationship(back_populates="sync_runs")
