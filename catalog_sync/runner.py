from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from sqlalchemy.orm import Session

from catalog_sync.clients import build_client, build_transformer
from catalog_sync.clients.base import ConnectionResult, SupplierClient, SupplierConnection
from catalog_sync.config import Settings, get_settings
from catalog_sync.coordinator import BatchUpsert, PersistenceStrategy, StreamingUpsert, SyncCoordinator
from catalog_sync.db import SessionLocal
from catalog_sync.errors import SupplierConnectionError, SyncAlreadyRunning
from catalog_sync.progress import ProgressTracker, SyncProgress
from catalog_sync.repository import CatalogRepository


MODES = ("batch", "streaming")
REFRESH_MODE = "refresh"

ClientFactory = Callable[[SupplierConnection, Settings], SupplierClient]

logger = logging.getLogger(__name__)


class SyncRunner:
    """Runs supplier syncs on a thread pool, at most one per supplier at a time."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        settings: Settings | None = None,
        client_factory: ClientFactory = build_client,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.client_factory = client_factory
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.settings.max_concurrent_syncs),
            thread_name_prefix="catalog-sync",
        )
        self._lock = threading.Lock()
        self._trackers: dict[int, ProgressTracker] = {}
        self._cancels: dict[int, threading.Event] = {}
        self._futures: dict[int, Future[SyncProgress]] = {}

    def start(self, supplier_id: int, mode: str | None = None) -> Future[SyncProgress]:
        mode = self._mode(mode)
        with self._lock:
            if self._is_running(supplier_id):
                raise SyncAlreadyRunning(f"A sync is already running for supplier {supplier_id}")
            tracker = self._trackers.setdefault(supplier_id, ProgressTracker())
            cancel = threading.Event()
            self._cancels[supplier_id] = cancel
            future = self._executor.submit(self.run_sync, supplier_id, mode, tracker, cancel)
            self._futures[supplier_id] = future
        future.add_done_callback(lambda done: self._log_outcome(supplier_id, done))
        logger.info("Queued %s sync for supplier %s", mode, supplier_id)
        return future

    def run_sync(
        self,
        supplier_id: int,
        mode: str | None = None,
        tracker: ProgressTracker | None = None,
        cancel: threading.Event | None = None,
    ) -> SyncProgress:
        mode = self._mode(mode)
        with self.session_factory() as db:
            repository = CatalogRepository(db)
            connection = self._connection(repository, supplier_id)
            try:
                client = self.client_factory(connection, self.settings)
            except SupplierConnectionError as exc:
                progress = self._failed_before_start(tracker, exc)
            else:
                try:
                    coordinator = self._coordinator(client, connection, tracker)
                    progress = coordinator.run(self._strategy(mode, repository, supplier_id), cancel)
                finally:
                    client.close()
            repository.record_run(supplier_id, mode, progress)
        return progress

    def refresh(self, supplier_id: int, keys: Sequence[str], mode: str | None = None) -> SyncProgress:
        mode = self._mode(mode)
        with self.session_factory() as db:
            repository = CatalogRepository(db)
            connection = self._connection(repository, supplier_id)
            client = self.client_factory(connection, self.settings)
            try:
                coordinator = self._coordinator(client, connection, None)
                progress = coordinator.refresh(keys, self._strategy(mode, repository, supplier_id))
            finally:
                client.close()
            repository.record_run(supplier_id, REFRESH_MODE, progress)
        return progress

    def test_connection(self, supplier_id: int) -> ConnectionResult:
        with self.session_factory() as db:
            repository = CatalogRepository(db)
            connection = self._connection(repository, supplier_id)
            try:
                client = self.client_factory(connection, self.settings)
            except SupplierConnectionError as exc:
                result = ConnectionResult(ok=False, error=str(exc))
            else:
                try:
                    result = client.test_connection()
                finally:
                    client.close()
            repository.record_connection_test(supplier_id, result)
        return result

    def progress(self, supplier_id: int) -> SyncProgress:
        tracker = self._trackers.get(supplier_id)
        return tracker.snapshot() if tracker else SyncProgress()

    def cancel(self, supplier_id: int) -> bool:
        with self._lock:
            if not self._is_running(supplier_id):
                return False
            self._cancels[supplier_id].set()
        logger.info("Cancellation requested for supplier %s", supplier_id)
        return True

    def is_running(self, supplier_id: int) -> bool:
        with self._lock:
            return self._is_running(supplier_id)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for event in self._cancels.values():
                event.set()
        self._executor.shutdown(wait=wait)

    def _failed_before_start(self, tracker: ProgressTracker | None, exc: SupplierConnectionError) -> SyncProgress:
        tracker = tracker or ProgressTracker()
        tracker.start()
        logger.error("Sync could not start: %s", exc)
        return tracker.fail(str(exc))

    def _log_outcome(self, supplier_id: int, future: Future[SyncProgress]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Sync for supplier %s could not run: %s", supplier_id, exc)

    def _is_running(self, supplier_id: int) -> bool:
        future = self._futures.get(supplier_id)
        return future is not None and not future.done()

    def _mode(self, mode: str | None) -> str:
        mode = mode or self.settings.default_persistence_mode
        if mode not in MODES:
            raise ValueError(f"Unknown persistence mode: {mode}")
        return mode

    def _connection(self, repository: CatalogRepository, supplier_id: int) -> SupplierConnection:
        supplier = repository.get_supplier(supplier_id)
        if supplier is None:
            raise ValueError(f"Supplier {supplier_id} not found")
        return SupplierConnection.from_supplier(supplier)

    def _coordinator(
        self,
        client: SupplierClient,
        connection: SupplierConnection,
        tracker: ProgressTracker | None,
    ) -> SyncCoordinator:
        return SyncCoordinator(
            client,
            build_transformer(connection),
            supplier_id=connection.supplier_id,
            tracker=tracker,
            max_consecutive_page_errors=self.settings.max_consecutive_page_errors,
        )

    def _strategy(self, mode: str, repository: CatalogRepository, supplier_id: int) -> PersistenceStrategy:
        if mode == "streaming":
            return StreamingUpsert(repository.save_one, repository.known_ids(supplier_id))
        return BatchUpsert(repository.save_batch)
