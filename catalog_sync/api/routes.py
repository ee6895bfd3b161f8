from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from catalog_sync.api.deps import get_handoff, get_runner, require_admin_token
from catalog_sync.api.errors import auth_code_error, from_sync_error, supplier_not_found
from catalog_sync.api.schemas import (
    AuthCodeIn,
    AuthCodeOut,
    CancelOut,
    ConnectionTestOut,
    RedeemIn,
    RedeemOut,
    RefreshRequest,
    SyncMode,
    SyncProgressOut,
    SyncRunOut,
    SyncStartedOut,
)
from catalog_sync.db import get_db
from catalog_sync.errors import CatalogSyncError
from catalog_sync.handoff import HandoffStore
from catalog_sync.progress import SyncProgress
from catalog_sync.repository import CatalogRepository
from catalog_sync.runner import SyncRunner

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _require_supplier(db: Session, supplier_id: int) -> None:
    if CatalogRepository(db).get_supplier(supplier_id) is None:
        raise supplier_not_found(supplier_id)


def _progress_out(supplier_id: int, progress: SyncProgress) -> SyncProgressOut:
    return SyncProgressOut(supplier_id=supplier_id, **progress.to_dict())


@router.get("/suppliers/{supplier_id}/test", response_model=ConnectionTestOut)
def test_supplier_connection(
    supplier_id: int,
    db: Session = Depends(get_db),
    runner: SyncRunner = Depends(get_runner),
) -> ConnectionTestOut:
    _require_supplier(db, supplier_id)
    result = runner.test_connection(supplier_id)
    return ConnectionTestOut(supplier_id=supplier_id, ok=result.ok, identity=result.identity, error=result.error)


@router.post("/suppliers/{supplier_id}/sync", response_model=SyncStartedOut, status_code=202)
def start_sync(
    supplier_id: int,
    mode: SyncMode | None = Query(default=None),
    db: Session = Depends(get_db),
    runner: SyncRunner = Depends(get_runner),
) -> SyncStartedOut:
    _require_supplier(db, supplier_id)
    chosen = mode or runner.settings.default_persistence_mode
    try:
        runner.start(supplier_id, chosen)
    except CatalogSyncError as exc:
        raise from_sync_error(exc, supplier_id) from exc
    return SyncStartedOut(supplier_id=supplier_id, mode=chosen)


@router.get("/suppliers/{supplier_id}/sync/progress", response_model=SyncProgressOut)
def sync_progress(supplier_id: int, runner: SyncRunner = Depends(get_runner)) -> SyncProgressOut:
    return _progress_out(supplier_id, runner.progress(supplier_id))


@router.post("/suppliers/{supplier_id}/sync/cancel", response_model=CancelOut)
def cancel_sync(supplier_id: int, runner: SyncRunner = Depends(get_runner)) -> CancelOut:
    return CancelOut(supplier_id=supplier_id, cancelled=runner.cancel(supplier_id))


@router.post("/suppliers/{supplier_id}/refresh", response_model=SyncProgressOut)
def refresh_products(
    supplier_id: int,
    payload: RefreshRequest,
    db: Session = Depends(get_db),
    runner: SyncRunner = Depends(get_runner),
) -> SyncProgressOut:
    _require_supplier(db, supplier_id)
    try:
        progress = runner.refresh(supplier_id, payload.product_ids, payload.mode)
    except CatalogSyncError as exc:
        raise from_sync_error(exc, supplier_id) from exc
    return _progress_out(supplier_id, progress)


@router.get("/sync-runs", response_model=list[SyncRunOut])
def sync_runs(
    supplier_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[SyncRunOut]:
    runs = CatalogRepository(db).recent_runs(supplier_id=supplier_id, limit=limit)
    return [SyncRunOut.model_validate(run) for run in runs]


@router.post("/auth-codes", response_model=AuthCodeOut, status_code=201)
def issue_auth_code(payload: AuthCodeIn, handoff: HandoffStore = Depends(get_handoff)) -> AuthCodeOut:
    try:
        code = handoff.issue_auth_code(payload.payload)
    except CatalogSyncError as exc:
        raise from_sync_error(exc) from exc
    return AuthCodeOut(code=code, expires_in=handoff.settings.auth_code_ttl_seconds)


@router.post("/auth-codes/redeem", response_model=RedeemOut)
def redeem_auth_code(payload: RedeemIn, handoff: HandoffStore = Depends(get_handoff)) -> RedeemOut:
    lookup = handoff.redeem_auth_code(payload.code)
    if not lookup.found:
        raise auth_code_error(lookup.status)
    return RedeemOut(value=lookup.value)
