import pytest
from sqlalchemy.exc import SQLAlchemyError

from catalog_sync.clients.base import ConnectionResult
from catalog_sync.errors import PersistenceError
from catalog_sync.models import CatalogProduct, Supplier, SyncRun
from catalog_sync.progress import ProgressTracker
from catalog_sync.repository import CatalogRepository
from catalog_sync.transform import GigaB2BTransformer


def _product(make_record, sku: str, price: float = 10.0):
    return GigaB2BTransformer(price_markup=1.6).to_canonical(make_record(sku, price=price), supplier_id=2)


def test_save_batch_creates_then_updates(session, make_record):
    repository = CatalogRepository(session)
    products = [_product(make_record, "A"), _product(make_record, "B")]

    first = repository.save_batch(products)
    second = repository.save_batch([_product(make_record, "A", price=12.0), _product(make_record, "C")])

    assert (first.created, first.updated) == (2, 0)
    assert (second.created, second.updated) == (1, 1)
    assert session.query(CatalogProduct).count() == 3
    row = session.query(CatalogProduct).filter_by(supplier_id=2, supplier_product_id="A").one()
    assert float(row.supplier_price) == 12.0
    assert float(row.merchant_price) == 19.2


def test_save_batch_is_idempotent(session, make_record):
    repository = CatalogRepository(session)
    products = [_product(make_record, sku) for sku in ("A", "B", "C")]

    repository.save_batch(products)
    again = repository.save_batch(products)

    assert (again.created, again.updated) == (0, 3)
    assert session.query(CatalogProduct).count() == 3


def test_save_batch_handles_duplicate_keys_in_one_page(session, make_record):
    repository = CatalogRepository(session)

    result = repository.save_batch([_product(make_record, "A"), _product(make_record, "A", price=11.0)])

    assert (result.created, result.updated) == (1, 1)
    assert session.query(CatalogProduct).count() == 1


def test_save_one_uses_update_hint_and_recovers_from_stale_hint(session, make_record):
    repository = CatalogRepository(session)

    repository.save_one(_product(make_record, "A"), is_update=False)
    repository.save_one(_product(make_record, "A", price=15.0), is_update=True)
    repository.save_one(_product(make_record, "A", price=16.0), is_update=False)

    rows = session.query(CatalogProduct).filter_by(supplier_product_id="A").all()
    assert len(rows) == 1
    assert float(rows[0].supplier_price) == 16.0


def test_admin_category_survives_sync(session, make_record):
    repository = CatalogRepository(session)
    repository.save_batch([_product(make_record, "A")])
    row = session.query(CatalogProduct).filter_by(supplier_product_id="A").one()
    row.category = "Living Room"
    row.category_id = "cat-42"
    session.commit()

    repository.save_batch([_product(make_record, "A", price=20.0)])

    session.refresh(row)
    assert row.category == "Living Room"
    assert float(row.supplier_price) == 20.0


def test_known_ids_are_scoped_to_supplier(session, make_record):
    repository = CatalogRepository(session)
    repository.save_batch([_product(make_record, "A"), _product(make_record, "B")])

    assert repository.known_ids(2) == {"A", "B"}
    assert repository.known_ids(1) == set()


def test_database_failure_is_persistence_error(session, make_record, monkeypatch):
    repository = CatalogRepository(session)

    def _broken_commit() -> None:
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(session, "commit", _broken_commit)

    with pytest.raises(PersistenceError):
        repository.save_batch([_product(make_record, "A")])
    with pytest.raises(PersistenceError):
        repository.save_one(_product(make_record, "B"), is_update=False)


def test_record_run_updates_supplier(session, make_record):
    repository = CatalogRepository(session)
    repository.save_batch([_product(make_record, "A"), _product(make_record, "B")])
    tracker = ProgressTracker()
    tracker.start()
    tracker.add(fetched_products=2, saved_products=2, created_products=2)
    progress = tracker.complete()

    run = repository.record_run(2, "batch", progress)

    assert run.status == "completed"
    assert run.created_products == 2
    supplier = session.get(Supplier, 2)
    assert supplier.total_products == 2
    assert supplier.last_synced_at is not None
    assert [item.id for item in repository.recent_runs(supplier_id=2)] == [run.id]
    assert session.query(SyncRun).count() == 1


def test_record_connection_test(session):
    repository = CatalogRepository(session)

    supplier = repository.record_connection_test(1, ConnectionResult(ok=False, error="401 Unauthorized"))

    assert supplier.connection_status == "error"
    assert supplier.connection_error == "401 Unauthorized"
    assert supplier.last_connection_test is not None
    assert repository.record_connection_test(99, ConnectionResult(ok=True)) is None
