from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


SyncMode = Literal["batch", "streaming"]


class ConnectionTestOut(BaseModel):
    supplier_id: int
    ok: bool
    identity: str | None = None
    error: str | None = None


class SyncStartedOut(BaseModel):
    supplier_id: int
    mode: SyncMode
    status: str = "started"


class SyncProgressOut(BaseModel):
    supplier_id: int
    status: str
    total_products: int
    fetched_products: int
    saved_products: int
    created_products: int
    updated_products: int
    errors: int
    current_page: int
    cursor: str | None
    started_at: str | None
    completed_at: str | None
    error_message: str | None


class CancelOut(BaseModel):
    supplier_id: int
    cancelled: bool


class RefreshRequest(BaseModel):
    product_ids: list[str] = Field(min_length=1, max_length=1000)
    mode: SyncMode | None = None


class SyncRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    supplier_id: int
    mode: str
    status: str
    total_products: int
    fetched_products: int
    saved_products: int
    created_products: int
    updated_products: int
    errors: int
    error_message: str | None
    started_at: datetime
    finished_at: datetime | None


class AuthCodeIn(BaseModel):
    payload: dict[str, Any]


class AuthCodeOut(BaseModel):
    code: str
    expires_in: int


class RedeemIn(BaseModel):
    code: str = Field(min_length=1, max_length=256)


class RedeemOut(BaseModel):
    value: dict[str, Any]
