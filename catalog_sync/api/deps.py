from __future__ import annotations

from fastapi import Header, Request

from catalog_sync.api.errors import ApiError, AppHTTPException
from catalog_sync.config import get_settings
from catalog_sync.handoff import HandoffStore
from catalog_sync.runner import SyncRunner


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if x_admin_token != settings.admin_token:
        raise AppHTTPException(status_code=401, error=ApiError(code="unauthorized", message="Invalid admin token"))


def get_runner(request: Request) -> SyncRunner:
    return request.app.state.runner


def get_handoff(request: Request) -> HandoffStore:
    return request.app.state.handoff
