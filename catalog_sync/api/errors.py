from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException

from catalog_sync.errors import CatalogSyncError, HandoffUnavailable, SupplierConnectionError, SyncAlreadyRunning


@dataclass
class ApiError:
    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class AppHTTPException(HTTPException):
    def __init__(self, status_code: int, error: ApiError):
        super().__init__(status_code=status_code, detail=error.to_dict())


SYNC_ERROR_STATUSES: dict[type[CatalogSyncError], tuple[int, str]] = {
    SyncAlreadyRunning: (409, "sync_running"),
    SupplierConnectionError: (502, "supplier_unreachable"),
    HandoffUnavailable: (503, "store_unavailable"),
}


def supplier_not_found(supplier_id: int) -> AppHTTPException:
    return AppHTTPException(
        status_code=404,
        error=ApiError(code="not_found", message="Supplier not found", details={"supplier_id": supplier_id}),
    )


def from_sync_error(exc: CatalogSyncError, supplier_id: int | None = None) -> AppHTTPException:
    status_code, code = SYNC_ERROR_STATUSES.get(type(exc), (500, "sync_error"))
    details = {"supplier_id": supplier_id} if supplier_id is not None else None
    return AppHTTPException(status_code=status_code, error=ApiError(code=code, message=str(exc), details=details))


def auth_code_error(status: str) -> AppHTTPException:
    if status == "unavailable":
        return AppHTTPException(
            status_code=503,
            error=ApiError(code="store_unavailable", message="Auth code store is unavailable"),
        )
    return AppHTTPException(status_code=404, error=ApiError(code="code_not_found", message="Auth code not found"))
