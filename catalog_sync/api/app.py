from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from catalog_sync.api import routes
from catalog_sync.config import get_settings
from catalog_sync.db import Base, engine
from catalog_sync.handoff import HandoffStore
from catalog_sync.runner import SyncRunner

settings = get_settings()
app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def startup() -> None:
    Base.metadata.create_all(bind=engine)
    if getattr(app.state, "runner", None) is None:
        app.state.runner = SyncRunner()
    if getattr(app.state, "handoff", None) is None:
        app.state.handoff = HandoffStore()


@app.on_event("shutdown")
def shutdown() -> None:
    runner = getattr(app.state, "runner", None)
    if runner is not None:
        runner.shutdown(wait=False)


@app.exception_handler(RequestValidationError)
def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"code": "validation_error", "message": "Invalid request", "details": exc.errors()})


app.include_router(routes.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
