"""
Accounts Service - FastAPI Application
Entry point for tenant-scoped account management.

This service handles:
- Account CRUD and bulk import
- Account hierarchy (parent links, levels, materialized paths)
- Duplicate detection and account merges
- Hierarchy integrity audits
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from accounts_service.app.config import get_settings
from accounts_service.core.exceptions import AccountServiceError
from accounts_service.core.services.account_store import get_account_store
from accounts_service.core.utils.error_handling import (
    error_response_body,
    generate_error_id,
    handle_generic_error,
    log_error_details,
)
from accounts_service.core.utils.logging import setup_logging

settings = get_settings()

# Initialize logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}",
        extra={
            "environment": settings.environment,
            "storage_backend": settings.storage_backend
        }
    )

    # Validate production configuration FIRST
    try:
        settings.validate_production_config()
    except ValueError as e:
        logger.critical(str(e))
        raise RuntimeError(str(e)) from e

    get_account_store()

    yield

    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title="Accounts Service",
    description="Tenant-scoped account management with hierarchy, deduplication and merge",
    version=settings.app_version,
    docs_url="/docs" if settings.enable_api_docs else None,
    redoc_url="/redoc" if settings.enable_api_docs else None,
    lifespan=lifespan
)

# ============================================
# Middleware
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "X-User-ID", "X-Request-ID"],
)


# ============================================
# Exception Handlers
# ============================================

@app.exception_handler(AccountServiceError)
async def account_service_exception_handler(request: Request, exc: AccountServiceError):
    """Render structured service errors with their own status code."""
    error_id = generate_error_id()
    log_error_details(
        error_id=error_id,
        error=exc,
        context={"method": request.method, "path": request.url.path},
        operation=request.url.path
    )
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=exc.http_status,
        content=error_response_body(exc, error_id),
        headers=headers
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors (non-HTTP exceptions only)."""
    http_exc = handle_generic_error(
        exc,
        context={"method": request.method, "path": request.url.path},
        operation=request.url.path
    )
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)


# ============================================
# Health Check
# ============================================

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


# ============================================
# API Routers
# ============================================

from accounts_service.app.routers import accounts

app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["Accounts"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "accounts_service.app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
