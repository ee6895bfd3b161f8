from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from catalog_sync.errors import SupplierConnectionError


Variant = Literal["cursor_rest", "signed_rpc"]
PageToken = Union[str, int, None]


class SupplierConnection(BaseModel):
    model_config = ConfigDict(frozen=True)

    supplier_id: int
    variant: Variant
    base_url: str
    credentials: dict[str, str] = Field(default_factory=dict)
    price_markup: float = 1.0

    def credential(self, *names: str) -> str:
        for name in names:
            value = self.credentials.get(name)
            if value:
                return value
        raise SupplierConnectionError(f"Supplier {self.supplier_id} is missing credential {names[0]!r}")

    @classmethod
    def from_supplier(cls, supplier: Any) -> SupplierConnection:
        return cls(
            supplier_id=supplier.id,
            variant=supplier.variant,
            base_url=supplier.base_url,
            credentials={str(k): str(v) for k, v in (supplier.credentials or {}).items()},
            price_markup=float(supplier.price_markup or 1),
        )


@dataclass(frozen=True)
class ConnectionResult:
    ok: bool
    identity: str | None = None
    error: str | None = None


@dataclass
class Page:
    records: list[dict[str, Any]]
    next_token: PageToken = None
    has_more: bool = False
    total_pages: int | None = None
    total: int | None = None
    # upstream listing size when records are resolved in a second step
    listed: int | None = None
    unresolved: int = 0

    @property
    def listed_count(self) -> int:
        return self.listed if self.listed is not None else len(self.records)


class SupplierClient(ABC):
    variant: Variant

    @abstractmethod
    def test_connection(self) -> ConnectionResult:
        raise NotImplementedError

    @abstractmethod
    def count_available(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def first_token(self) -> PageToken:
        raise NotImplementedError

    @abstractmethod
    def fetch_page(self, token: PageToken) -> Page:
        raise NotImplementedError

    @abstractmethod
    def skip_token(self, token: PageToken) -> PageToken:
        """Pointer to the page after ``token`` when ``token`` failed, or None if it cannot be derived."""
        raise NotImplementedError

    @abstractmethod
    def fetch_detail(self, keys: Sequence[str]) -> list[dict[str, Any]]:
        raise NotImplementedError

    def close(self) -> None:
        return None
