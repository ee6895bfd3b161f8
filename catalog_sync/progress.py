from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from catalog_sync.errors import InvalidTransition


IDLE = "idle"
RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"

COUNTERS = (
    "total_products",
    "fetched_products",
    "saved_products",
    "created_products",
    "updated_products",
    "errors",
)


@dataclass(frozen=True)
class SyncProgress:
    status: str = IDLE
    total_products: int = 0
    fetched_products: int = 0
    saved_products: int = 0
    created_products: int = 0
    updated_products: int = 0
    errors: int = 0
    current_page: int = 0
    cursor: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status == RUNNING

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "total_products": self.total_products,
            "fetched_products": self.fetched_products,
            "saved_products": self.saved_products,
            "created_products": self.created_products,
            "updated_products": self.updated_products,
            "errors": self.errors,
            "current_page": self.current_page,
            "cursor": self.cursor,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


class ProgressTracker:
    """Holds the progress of one connection's sync.

    The current value is an immutable ``SyncProgress``; every write builds a
    new value under the lock and swaps the reference, so ``snapshot()`` never
    returns a half-applied update and callers cannot mutate tracker state.
    """

    def __init__(self, on_change: Callable[[SyncProgress], None] | None = None) -> None:
        self._lock = threading.Lock()
        self._current = SyncProgress()
        self._on_change = on_change

    def snapshot(self) -> SyncProgress:
        return self._current

    def start(self) -> SyncProgress:
        with self._lock:
            if self._current.status == RUNNING:
                raise InvalidTransition("progress is already running")
            # a finished tracker starts a fresh run from zero
            new = SyncProgress(status=RUNNING, started_at=datetime.now(timezone.utc))
            self._current = new
        self._notify(new)
        return new

    def update(self, **changes: object) -> SyncProgress:
        if "status" in changes:
            raise InvalidTransition("use complete() or fail() to change status")
        return self._swap(lambda current: replace(current, **changes))

    def add(self, **deltas: int) -> SyncProgress:
        unknown = set(deltas) - set(COUNTERS)
        if unknown:
            raise ValueError(f"Unknown progress counters: {sorted(unknown)}")

        def _apply(current: SyncProgress) -> SyncProgress:
            values = {name: getattr(current, name) + delta for name, delta in deltas.items()}
            return replace(current, **values)

        return self._swap(_apply)

    def complete(self) -> SyncProgress:
        return self._finish(COMPLETED, None)

    def fail(self, message: str) -> SyncProgress:
        return self._finish(ERROR, message)

    def _finish(self, status: str, message: str | None) -> SyncProgress:
        return self._swap(
            lambda current: replace(
                current,
                status=status,
                error_message=message,
                completed_at=datetime.now(timezone.utc),
            )
        )

    def _swap(self, build: Callable[[SyncProgress], SyncProgress]) -> SyncProgress:
        with self._lock:
            if self._current.status != RUNNING:
                raise InvalidTransition(f"progress is {self._current.status}, not running")
            new = build(self._current)
            self._current = new
        self._notify(new)
        return new

    def _notify(self, progress: SyncProgress) -> None:
        if self._on_change is not None:
            self._on_change(progress)
