import threading

import pytest

from catalog_sync.config import Settings
from catalog_sync.errors import SyncAlreadyRunning
from catalog_sync.models import CatalogProduct, Supplier, SyncRun
from catalog_sync.runner import SyncRunner


@pytest.fixture()
def settings() -> Settings:
    return Settings(max_concurrent_syncs=2)


def _runner(session_factory, settings, client):
    return SyncRunner(session_factory=session_factory, settings=settings, client_factory=lambda connection, _: client)


def _pages(make_record, count: int):
    return [[make_record(f"P{page}-{item}") for item in range(2)] for page in range(1, count + 1)]


def test_run_sync_persists_and_records_run(session, session_factory, settings, fake_client_cls, make_record):
    client = fake_client_cls(_pages(make_record, 2))
    runner = _runner(session_factory, settings, client)

    progress = runner.run_sync(2, "streaming")
    runner.shutdown()

    assert progress.status == "completed"
    assert progress.created_products == 4
    assert client.closed is True
    session.expire_all()
    assert session.query(CatalogProduct).filter_by(supplier_id=2).count() == 4
    product = session.query(CatalogProduct).filter_by(supplier_product_id="P1-0").one()
    assert float(product.merchant_price) == 16.0
    run = session.query(SyncRun).one()
    assert (run.mode, run.status, run.saved_products) == ("streaming", "completed", 4)
    assert session.get(Supplier, 2).total_products == 4


def test_background_sync_reports_progress(session, session_factory, settings, fake_client_cls, make_record):
    runner = _runner(session_factory, settings, fake_client_cls(_pages(make_record, 3)))

    future = runner.start(2, "batch")
    result = future.result(timeout=10)
    runner.shutdown()

    assert result.status == "completed"
    assert runner.progress(2) == result
    assert runner.progress(2).saved_products == 6
    assert runner.is_running(2) is False


def test_single_flight_and_cancellation(session, session_factory, settings, fake_client_cls, make_record):
    gate = threading.Event()

    class GatedClient(fake_client_cls):
        def fetch_page(self, token):
            gate.wait(timeout=10)
            return super().fetch_page(token)

    runner = _runner(session_factory, settings, GatedClient(_pages(make_record, 3)))

    future = runner.start(2)
    with pytest.raises(SyncAlreadyRunning):
        runner.start(2)
    assert runner.cancel(2) is True
    gate.set()
    result = future.result(timeout=10)
    runner.shutdown()

    assert result.status == "error"
    assert result.error_message == "sync cancelled"
    assert runner.cancel(2) is False
    session.expire_all()
    assert session.query(SyncRun).one().status == "error"


def test_unknown_mode_is_rejected(session_factory, settings, fake_client_cls):
    runner = _runner(session_factory, settings, fake_client_cls([]))
    with pytest.raises(ValueError):
        runner.start(2, "parallel")
    runner.shutdown()


def test_idle_progress_for_unknown_supplier(session_factory, settings, fake_client_cls):
    runner = _runner(session_factory, settings, fake_client_cls([]))
    assert runner.progress(42).status == "idle"
    runner.shutdown()


def test_missing_credentials_fail_the_run(session, session_factory, settings):
    supplier = session.get(Supplier, 1)
    supplier.credentials = {}
    session.commit()
    runner = SyncRunner(session_factory=session_factory, settings=settings)

    progress = runner.run_sync(1, "batch")
    result = runner.test_connection(1)
    runner.shutdown()

    assert progress.status == "error"
    assert "access_token" in progress.error_message
    assert result.ok is False
    session.expire_all()
    assert session.get(Supplier, 1).connection_status == "error"


def test_test_connection_records_status(session, session_factory, settings, fake_client_cls):
    runner = _runner(session_factory, settings, fake_client_cls([]))

    result = runner.test_connection(2)
    runner.shutdown()

    assert result.ok is True
    session.expire_all()
    assert session.get(Supplier, 2).connection_status == "connected"


def test_refresh_updates_selected_products(session, session_factory, settings, fake_client_cls, make_record):
    client = fake_client_cls(_pages(make_record, 2))
    runner = _runner(session_factory, settings, client)
    runner.run_sync(2, "batch")

    progress = runner.refresh(2, ["P2-1"], "batch")
    runner.shutdown()

    assert progress.status == "completed"
    assert progress.updated_products == 1
    session.expire_all()
    assert session.query(SyncRun).filter_by(mode="refresh").count() == 1
