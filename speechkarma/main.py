"""
SpeechKarma - Public Archive of Politicians' Statements

Main application entry point.

Anyone may browse the archive. Authenticated contributors may record
statements and correct their own mistakes for a short grace period.

Run with:
    uvicorn speechkarma.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from speechkarma.core import (
    AuthenticationRequired,
    Forbidden,
    InternalError,
    NotFound,
    StatementError,
    StatementService,
    ValidationError,
)
from speechkarma.observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)
from speechkarma.web.shared_service import create_statement_service, seed_reference_data

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)

VERSION = "0.1.0"

STATUS_CODES = {
    ValidationError: 400,
    AuthenticationRequired: 401,
    Forbidden: 403,
    NotFound: 404,
    InternalError: 500,
}


def error_envelope(message: str, code: str, details: Optional[dict] = None) -> dict:
    return {"error": {"message": message, "code": code, "details": details or {}}}


async def statement_error_handler(request: Request, exc: StatementError) -> JSONResponse:
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code >= 500:
        # Infrastructure details stay in the logs
        logger.error("Request failed with internal error", error=exc.message, code=exc.code)
        return JSONResponse(
            status_code=status_code,
            content=error_envelope("Internal server error", exc.code),
        )
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(exc.message, exc.code, exc.details),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request input gets the same envelope as engine validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or "request"
    reason = first.get("msg", "is invalid")
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            f"Invalid {field}: {reason}",
            ValidationError.code,
            {"field": field, "reason": reason, "errors": len(errors)},
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=error_envelope("Internal server error", InternalError.code),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    service: Optional[StatementService] = getattr(app.state, "statement_service", None)
    owns_service = service is None
    if owns_service:
        service = create_statement_service()
        seed_reference_data(service.store)
        app.state.statement_service = service

    app.state.statement_store = service.store

    logger.info(
        "Application startup complete",
        store_type=type(service.store).__name__,
        augmentation_enabled=service.config.augmentation.enabled,
    )

    yield

    if owns_service:
        service.close()
    logger.info("Application shutdown complete")


def create_app(service: Optional[StatementService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Pre-built StatementService (tests). Built from the
                 environment during startup if None.
    """
    app = FastAPI(
        title="SpeechKarma",
        description="""
## Public Archive of Politicians' Statements

### Rules

- **Attributed**: the author of a statement is always the verified caller
- **Grace period**: authors may edit or delete for 15 minutes after recording
- **Soft delete**: deleted statements disappear from every read, but are kept
- **Best-effort summaries**: an optional AI summary is appended on creation

### Authentication

Send a signed session token as the `sk_session` cookie or as
`Authorization: Bearer <token>`. Reads work without one.

### Storage Backends

- **InMemoryStatementStore**: Development/testing (default)
- **PostgresStatementStore**: Production with full durability

Set `DATABASE_URL` or `DATABASE_HOST` environment variables to use PostgreSQL.
        """,
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if service is not None:
        app.state.statement_service = service

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    # CORS configuration for frontend development
    # In production, restrict to your actual domain
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:4321",  # Astro dev server
            "http://127.0.0.1:4321",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,  # Required for cookies
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StatementError, statement_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    from speechkarma.api.routes import router
    app.include_router(router)

    _add_system_routes(app)
    return app


def _add_system_routes(app: FastAPI) -> None:

    @app.get("/health", tags=["System"])
    async def health(request: Request):
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For detailed health, use /health/detailed
        """
        return {"status": "healthy", "service": "speechkarma"}

    @app.get("/health/detailed", tags=["System"])
    def health_detailed(request: Request):
        """
        Detailed health check.

        Checks:
        - Service liveness
        - Statement store connectivity
        - Augmentation configuration (informational)

        Returns 200 if healthy, 503 if unhealthy.
        """
        service = request.app.state.statement_service
        health_status = check_health(
            store=service.store,
            augmentation=service.config.augmentation,
        )
        status_code = 200 if health_status.healthy else 503

        return JSONResponse(
            status_code=status_code,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """
        Get application metrics.

        Returns counters and latency percentiles.
        """
        return get_metrics().get_summary()

    @app.get("/api", tags=["System"])
    async def api_info(request: Request):
        """API info for the frontend."""
        service = request.app.state.statement_service
        return {
            "name": "SpeechKarma API",
            "version": VERSION,
            "storage_backend": type(service.store).__name__,
            "grace_period_minutes": service.config.grace_period.total_seconds() / 60,
            "endpoints": {
                "statements": "/api/statements",
                "statement_detail": "/api/statements/{id}",
                "politician_timeline": "/api/politicians/{id}/statements",
            },
        }


app = create_app()
