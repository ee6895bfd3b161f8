from __future__ import annotations


class CatalogSyncError(Exception):
    pass


class SupplierConnectionError(CatalogSyncError):
    """Auth or transport failure: the upstream cannot be used for the rest of the run."""


class UpstreamError(CatalogSyncError):
    """Non-2xx response or an envelope with ``success=false``."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        sub_message: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.code = code
        self.sub_message = sub_message
        super().__init__(self._describe())

    def _describe(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.code:
            parts.append(f"code={self.code}")
        if self.sub_message:
            parts.append(f"detail={self.sub_message}")
        return " ".join(parts)


class ProtocolError(CatalogSyncError):
    """Upstream body that is not the JSON shape the client expects."""


class TransformError(CatalogSyncError):
    pass


class PersistenceError(CatalogSyncError):
    pass


class InvalidTransition(CatalogSyncError):
    pass


class SyncAlreadyRunning(CatalogSyncError):
    pass


PAGE_SCOPED_ERRORS = (UpstreamError, ProtocolError, TransformError)


class SyncCancelled(CatalogSyncError):
    def __init__(self, message: str = "sync cancelled") -> None:
        super().__init__(message)


class HandoffUnavailable(CatalogSyncError):
    """The secure handoff store cannot be reached; callers must not proceed."""
