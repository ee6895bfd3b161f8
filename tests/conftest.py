import os

os.environ.setdefault("CATALOG_SYNC_DATABASE_URL", "sqlite:///:memory:")

from decimal import Decimal

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from catalog_sync.clients.base import ConnectionResult, Page, SupplierClient
from catalog_sync.db import Base
from catalog_sync.models import Supplier


def rpc_record(sku: str, available: bool | None = True, price: float = 10.0) -> dict[str, object]:
    record: dict[str, object] = {
        "sku": sku,
        "price": price,
        "sellerInfo": {"sellerStore": "Acme Furniture"},
        "category": "Furniture",
        "mainImageUrl": f"https://img.example.com/{sku}.jpg",
    }
    if available is not None:
        record["skuAvailable"] = available
    return record


class FakeCatalogClient(SupplierClient):
    """Page-numbered client over in-memory pages, with scripted failures."""

    variant = "signed_rpc"

    def __init__(
        self,
        pages: list[list[dict[str, object]]],
        failures: dict[int, Exception] | None = None,
        total: int | None = None,
        count_error: Exception | None = None,
        connection_ok: bool = True,
        can_skip: bool = True,
    ) -> None:
        self.pages = pages
        self.failures = failures or {}
        self.total = total
        self.count_error = count_error
        self.connection_ok = connection_ok
        self.can_skip = can_skip
        self.fetched_tokens: list[int] = []
        self.closed = False

    def test_connection(self) -> ConnectionResult:
        if self.connection_ok:
            return ConnectionResult(ok=True, identity="fake supplier")
        return ConnectionResult(ok=False, error="invalid credentials")

    def count_available(self) -> int:
        if self.count_error is not None:
            raise self.count_error
        return self.total if self.total is not None else sum(len(page) for page in self.pages)

    def first_token(self) -> int:
        return 1

    def fetch_page(self, token):
        self.fetched_tokens.append(token)
        if token in self.failures:
            raise self.failures[token]
        records = self.pages[token - 1] if token <= len(self.pages) else []
        has_more = token < len(self.pages)
        return Page(
            records=list(records),
            next_token=token + 1 if has_more else None,
            has_more=has_more,
            total_pages=len(self.pages),
        )

    def skip_token(self, token):
        return token + 1 if self.can_skip else None

    def fetch_detail(self, keys):
        index = {record["sku"]: record for page in self.pages for record in page}
        return [index[key] for key in keys if key in index]

    def close(self) -> None:
        self.closed = True


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    def ping(self) -> bool:
        self._check()
        return True

    def setex(self, name: str, ttl: int, value: str) -> None:
        self._check()
        self.data[name] = value
        self.ttls[name] = ttl

    def get(self, name: str) -> str | None:
        self._check()
        return self.data.get(name)

    def delete(self, name: str) -> int:
        self._check()
        return 1 if self.data.pop(name, None) is not None else 0

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self.redis = redis
        self.ops: list[tuple[str, str]] = []

    def get(self, name: str) -> "FakePipeline":
        self.ops.append(("get", name))
        return self

    def delete(self, name: str) -> "FakePipeline":
        self.ops.append(("delete", name))
        return self

    def execute(self) -> list[object]:
        self.redis._check()
        return [getattr(self.redis, op)(name) for op, name in self.ops]


@pytest.fixture()
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def make_record():
    return rpc_record


@pytest.fixture()
def fake_client_cls():
    return FakeCatalogClient


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def session(session_factory) -> Session:
    db = session_factory()
    db.add_all(
        [
            Supplier(
                id=1,
                name="Acme Shopify",
                variant="cursor_rest",
                base_url="acme.myshopify.com",
                credentials={"access_token": "shpat_test"},
                price_markup=Decimal("1.000"),
            ),
            Supplier(
                id=2,
                name="GigaB2B",
                variant="signed_rpc",
                base_url="https://api.gigab2b.test",
                credentials={"client_id": "buyer-1", "client_secret": "s3cret"},
                price_markup=Decimal("1.600"),
            ),
        ]
    )
    db.commit()
    try:
        yield db
    finally:
        db.close()
