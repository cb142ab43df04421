"""FastAPI application entry point."""
import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from invoicing.config import settings
from invoicing.database import engine
from invoicing.exceptions import DuplicateInvoiceNumberError, InvoicingError, NotFoundError
from invoicing.middleware.logging import LoggingMiddleware, get_request_id, setup_logging
from invoicing.middleware.metrics import MetricsMiddleware
from invoicing.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    await engine.dispose()
    logger.info("application_shutting_down")


app = FastAPI(
    title="Invoicing Service",
    description="Invoices, line items and payments with automatically derived payment status",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[dict[str, Any]],
    remediation: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the JSON body shared by every error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "remediation": remediation,
            "request_id": get_request_id(request),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
        headers=headers,
    )


@app.exception_handler(InvoicingError)
async def invoicing_exception_handler(request: Request, exc: InvoicingError) -> JSONResponse:
    """
    Handle expected invoicing failures.

    404 for unknown invoices or payments, 409 for a taken invoice number and
    400 for every other business rule. The message is meant for display.
    """
    if isinstance(exc, NotFoundError):
        status_code, error = status.HTTP_404_NOT_FOUND, "NotFound"
    elif isinstance(exc, DuplicateInvoiceNumberError):
        status_code, error = status.HTTP_409_CONFLICT, "Conflict"
    else:
        status_code, error = status.HTTP_400_BAD_REQUEST, "BusinessRuleViolation"

    logger.info(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        status_code=status_code,
        code=exc.code,
        reason=exc.message,
    )

    return error_response(
        request,
        status_code,
        error,
        exc.message,
        details=[ErrorDetail(code=exc.code, message=exc.message).model_dump()],
        remediation=REMEDIATION_HINTS.get(exc.code),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with field-level validation errors.
    """
    details = []
    for error in exc.errors():
        code = ErrorCode.MISSING_REQUIRED_FIELD if error["type"] == "missing" else ErrorCode.VALIDATION_ERROR
        details.append(
            ErrorDetail(
                code=code,
                message=error["msg"],
                field=".".join(str(loc) for loc in error["loc"]),
                value=error.get("input"),
            ).model_dump(mode="json")
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(details),
    )

    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details=details,
        remediation="Check the API documentation for correct request format at /docs",
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable; the transaction has already been rolled back.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        "A database error occurred",
        details=[{"code": ErrorCode.DATABASE_ERROR, "message": error_message}],
        remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace and returns a safe 500 response.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        details=[
            {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": str(exc) if settings.debug else "Internal server error",
            }
        ],
        remediation="Please contact support with the request ID",
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Invoicing Service",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from invoicing.api.v1 import health, invoices, payments  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(invoices.router, prefix="/v1", tags=["Invoices"])
app.include_router(payments.router, prefix="/v1", tags=["Payments"])
