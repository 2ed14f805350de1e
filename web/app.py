from __future__ import annotations

import logging
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dairyledger.db import initialize_db
from dairyledger.errors import (
    ConcurrentModification,
    DuplicatePayment,
    LedgerError,
    NotFound,
    TransientDependencyFailure,
)
from dairyledger.logging import configure_logging, reconfigure
from web.deps import DBConnectionMiddleware
from web.routes.billing import router as billing_router
from web.routes.customers import router as customers_router
from web.routes.deliveries import router as deliveries_router
from web.routes.jobs import router as jobs_router
from web.routes.payments import router as payments_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    initialize_db()
    # Re-apply logging config, Alembic's fileConfig may have overridden it
    reconfigure()
    logger.info("Application started")
    yield


app = FastAPI(title="dairyledger", docs_url=None, redoc_url=None, lifespan=lifespan)

app.add_middleware(DBConnectionMiddleware)

app.include_router(billing_router)
app.include_router(payments_router)
app.include_router(deliveries_router)
app.include_router(jobs_router)
app.include_router(customers_router)


def status_for(exc: LedgerError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (ConcurrentModification, DuplicatePayment)):
        return 409
    if isinstance(exc, TransientDependencyFailure):
        return 503
    return 400


def _error_response(status_code: int, reason: str, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "reason": reason, "message": message}, status_code=status_code)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = status_for(exc)
    logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.reason, exc.message)
    return _error_response(status_code, exc.reason, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
    logger.warning("%s %s rejected: %s", request.method, request.url.path, message)
    return _error_response(400, "ValidationError", message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s:\n%s",
        request.method,
        request.url.path,
        traceback.format_exc(),
    )
    return _error_response(500, "InternalError", "Internal Server Error")


@app.get("/health")
async def health():
    return {"status": "ok"}
