from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from catalog_sync.errors import TransformError


DEFAULT_CATEGORY = "Uncategorized"
AVAILABLE_QUANTITY = 100


@dataclass(frozen=True)
class ProductImage:
    url: str
    alt: str
    position: int


@dataclass(frozen=True)
class ProductVariant:
    id: str
    title: str
    price: float
    sku: str
    inventory_quantity: int
    compare_at_price: float | None
    cost: float


@dataclass(frozen=True)
class CanonicalProduct:
    supplier_id: int
    supplier_product_id: str
    supplier_sku: str
    title: str
    description: str
    category: str
    tags: tuple[str, ...]
    images: tuple[ProductImage, ...]
    variants: tuple[ProductVariant, ...]
    supplier_price: float
    merchant_price: float
    inventory_quantity: int
    status: str = "active"
    is_global: bool = True
    sync_status: str = "synced"
    last_synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple[int, str]:
        return (self.supplier_id, self.supplier_product_id)


class ProductTransformer(ABC):
    """Maps one supplier-native record onto ``CanonicalProduct``.

    Implementations are pure and total: a missing optional field falls back to
    a documented default instead of raising.
    """

    def __init__(self, price_markup: float = 1.0) -> None:
        self.price_markup = price_markup

    def accepts(self, record: dict[str, Any]) -> bool:
        return True

    def to_canonical(self, record: dict[str, Any], supplier_id: int) -> CanonicalProduct:
        if not isinstance(record, dict):
            raise TransformError(f"Expected a mapping record, got {type(record).__name__}")
        return self._build(record, supplier_id)

    @abstractmethod
    def _build(self, record: dict[str, Any], supplier_id: int) -> CanonicalProduct:
        raise NotImplementedError

    def _merchant_price(self, supplier_price: float) -> float:
        return round(supplier_price * self.price_markup, 2)


class ShopifyTransformer(ProductTransformer):
    def _build(self, record: dict[str, Any], supplier_id: int) -> CanonicalProduct:
        product_id = _as_text(record.get("id")) or ""
        title = _as_text(record.get("title")) or product_id

        variants = tuple(self._variant(item) for item in _as_list(record.get("variants")) if isinstance(item, dict))
        primary = variants[0] if variants else None
        supplier_price = primary.price if primary else 0.0

        return CanonicalProduct(
            supplier_id=supplier_id,
            supplier_product_id=product_id,
            supplier_sku=primary.sku if primary else "",
            title=title,
            description=_as_text(record.get("body_html")) or "",
            category=_as_text(record.get("product_type")) or DEFAULT_CATEGORY,
            tags=_split_tags(record.get("tags")),
            images=self._images(record.get("images"), title),
            variants=variants,
            supplier_price=supplier_price,
            merchant_price=self._merchant_price(supplier_price),
            inventory_quantity=primary.inventory_quantity if primary else 0,
            status="active" if record.get("status") == "active" else "draft",
        )

    def _variant(self, item: dict[str, Any]) -> ProductVariant:
        return ProductVariant(
            id=_as_text(item.get("id")) or "",
            title=_as_text(item.get("title")) or "Default",
            price=_to_float(item.get("price")) or 0.0,
            sku=_as_text(item.get("sku")) or "",
            inventory_quantity=_to_int(item.get("inventory_quantity")),
            compare_at_price=_to_float(item.get("compare_at_price")),
            # not exposed by this API
            cost=0.0,
        )

    def _images(self, raw: Any, title: str) -> tuple[ProductImage, ...]:
        images: list[ProductImage] = []
        for index, item in enumerate(_as_list(raw)):
            if not isinstance(item, dict):
                continue
            url = _as_text(item.get("src"))
            if not url:
                continue
            position = _to_int(item.get("position"), default=index + 1)
            images.append(ProductImage(url=url, alt=_as_text(item.get("alt")) or title, position=position))
        return tuple(sorted(images, key=lambda image: image.position))


class GigaB2BTransformer(ProductTransformer):
    """Maps a detail record merged with its price record.

    The upstream has no title field, no stock quantity and several price
    columns, so the canonical title is synthesized and stock is a 0/100 signal.
    """

    def accepts(self, record: dict[str, Any]) -> bool:
        return isinstance(record, dict) and record.get("skuAvailable") is not False

    def _build(self, record: dict[str, Any], supplier_id: int) -> CanonicalProduct:
        sku = _as_text(record.get("sku")) or ""
        seller = record.get("sellerInfo")
        store = _as_text(seller.get("sellerStore")) if isinstance(seller, dict) else None
        title = f"{store} {sku}".strip() if store else sku

        list_price = _to_float(record.get("price"))
        supplier_price = _first_price(record) or 0.0
        quantity = AVAILABLE_QUANTITY if record.get("skuAvailable") is True else 0
        compare_at = list_price if list_price is not None and list_price > supplier_price else None

        variant = ProductVariant(
            id=sku,
            title="Default",
            price=supplier_price,
            sku=sku,
            inventory_quantity=quantity,
            compare_at_price=compare_at,
            cost=0.0,
        )
        return CanonicalProduct(
            supplier_id=supplier_id,
            supplier_product_id=sku,
            supplier_sku=sku,
            title=title,
            description=_as_text(record.get("description")) or "",
            category=_as_text(record.get("category")) or DEFAULT_CATEGORY,
            tags=(),
            images=self._images(record, title),
            variants=(variant,),
            supplier_price=supplier_price,
            merchant_price=self._merchant_price(supplier_price),
            inventory_quantity=quantity,
        )

    def _images(self, record: dict[str, Any], title: str) -> tuple[ProductImage, ...]:
        urls: list[str] = []
        main = _as_text(record.get("mainImageUrl"))
        if main:
            urls.append(main)
        for raw in _as_list(record.get("imageUrls")):
            url = _as_text(raw)
            if url and url not in urls:
                urls.append(url)
        return tuple(ProductImage(url=url, alt=title, position=index + 1) for index, url in enumerate(urls))


def _first_price(record: dict[str, Any]) -> float | None:
    for key in ("discountedPrice", "exclusivePrice", "price"):
        value = _to_float(record.get(key))
        if value is not None:
            return value
    return None


def _split_tags(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        candidates = raw.split(",")
    else:
        candidates = [str(item) for item in _as_list(raw)]
    tags: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        tag = candidate.strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tuple(tags)


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace("$", "").replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _to_int(value: Any, default: int = 0) -> int:
    numeric = _to_float(value)
    return int(numeric) if numeric is not None else default
