"""
Purchase Ledger — FastAPI Application.

This is the entry point for the application.
All routers, the request-id middleware and the domain error
handler are registered here.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from purchase_ledger.config import get_settings
from purchase_ledger.exceptions import PurchaseLedgerError
from purchase_ledger.logging_config import setup_logging
from purchase_ledger.api.audit import router as audit_router
from purchase_ledger.api.deps import REQUEST_ID_HEADER
from purchase_ledger.api.health import router as health_router
from purchase_ledger.api.purchases import router as purchases_router
from purchase_ledger.services.audit_service import (
    REQUEST_ID_MAX_LENGTH,
    get_audit_dispatcher,
)

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("%s %s starting", settings.APP_NAME, settings.APP_VERSION)
    yield
    # Queued audit records must reach the database before exit
    get_audit_dispatcher().shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Employee purchase ledger with audit trail",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Reuse the caller's X-Request-ID or generate one, and echo it back.

    A blank inbound id, or one longer than the audit column (a W3C
    traceparent, say), is replaced with a fresh one, not rejected.
    """
    request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if not request_id or len(request_id) > REQUEST_ID_MAX_LENGTH:
        request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(PurchaseLedgerError)
async def purchase_ledger_error_handler(request: Request, exc: PurchaseLedgerError):
    logger.info(
        "%s on %s %s: %s (request %s)",
        exc.code, request.method, request.url.path, exc.message,
        getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
):
    """Malformed bodies and query strings use the same error envelope."""
    details = {
        ".".join(str(part) for part in error["loc"][1:]) or "body": error["msg"]
        for error in exc.errors()
    }
    return JSONResponse(
        status_code=422,
        content={"error": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": details,
        }},
    )


# Register routers
app.include_router(health_router)
app.include_router(purchases_router)
app.include_router(audit_router)
