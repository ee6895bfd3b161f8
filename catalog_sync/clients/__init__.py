from __future__ import annotations

from dataclasses import dataclass

from catalog_sync.clients.base import SupplierClient, SupplierConnection
from catalog_sync.clients.gigab2b import GigaB2BClient
from catalog_sync.clients.shopify import ShopifyClient
from catalog_sync.config import Settings, get_settings
from catalog_sync.transform import GigaB2BTransformer, ProductTransformer, ShopifyTransformer


@dataclass(frozen=True)
class VariantRegistry:
    client: type[SupplierClient]
    transformer: type[ProductTransformer]


VARIANTS: dict[str, VariantRegistry] = {
    "cursor_rest": VariantRegistry(client=ShopifyClient, transformer=ShopifyTransformer),
    "signed_rpc": VariantRegistry(client=GigaB2BClient, transformer=GigaB2BTransformer),
}


def _registry(connection: SupplierConnection) -> VariantRegistry:
    registry = VARIANTS.get(connection.variant)
    if not registry:
        raise ValueError(f"Unknown supplier variant: {connection.variant}")
    return registry


def build_client(connection: SupplierConnection, settings: Settings | None = None) -> SupplierClient:
    registry = _registry(connection)
    settings = settings or get_settings()
    common = {
        "timeout_seconds": settings.request_timeout_seconds,
        "max_fetch_retries": settings.max_fetch_retries,
        "retry_backoff_seconds": settings.retry_backoff_seconds,
    }
    if connection.variant == "cursor_rest":
        options = {
            **common,
            "api_version": settings.shopify_api_version,
            "page_size": settings.shopify_page_size,
            "page_delay_seconds": settings.shopify_page_delay_seconds,
        }
    else:
        options = {
            **common,
            "page_size": settings.gigab2b_page_size,
            "price_batch_size": settings.gigab2b_price_batch_size,
            "price_batch_delay_seconds": settings.gigab2b_price_batch_delay_seconds,
        }
    return registry.client(connection, **options)


def build_transformer(connection: SupplierConnection) -> ProductTransformer:
    return _registry(connection).transformer(price_markup=connection.price_markup)


__all__ = [
    "GigaB2BClient",
    "ShopifyClient",
    "SupplierClient",
    "SupplierConnection",
    "VARIANTS",
    "build_client",
    "build_transformer",
]
