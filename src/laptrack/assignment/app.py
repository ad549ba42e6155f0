"""FastAPI application for laptop fleet assignment.

This is the main entry point for the API server.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..common.database import check_database_health
from ..common.error_sanitizer import sanitize_error_message
from ..common.exceptions import LaptrackError
from .api.dependencies import close_storage, get_db_pool, get_storage_backend, init_storage
from .api.router import distributions_router, laptops_router
from .api.schemas import ErrorResponse

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Initialize the storage backend (pool and schema, or memory)
    - Shutdown: Release it
    """
    logger.info("Starting Laptop Fleet API...")

    try:
        await init_storage()
        logger.info(f"Storage initialized ({get_storage_backend()})")
    except Exception as e:
        logger.error(f"Failed to initialize storage: {e}")
        raise

    yield

    logger.info("Shutting down Laptop Fleet API...")
    await close_storage()
    logger.info("Storage closed")


def _error_response(status_code: int, error: str, message: str, details=None, headers=None):
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error, message=message, details=details or {}
        ).model_dump(mode="json"),
        headers=headers,
    )


async def laptrack_exception_handler(request: Request, exc: LaptrackError):
    """Render domain and store errors.

    4xx messages are written by the service and returned as-is; anything
    mapped to 5xx is logged in full and sanitized for the client.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}", exc_info=exc)
        return _error_response(
            exc.status_code,
            exc.code,
            sanitize_error_message(exc.message, "Internal server error"),
        )

    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTPException (auth failures, unknown routes) in the common shape."""
    detail = str(exc.detail)
    if exc.status_code >= 500:
        detail = sanitize_error_message(detail, "Internal server error")
    return _error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        detail,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body/path validation failures are client errors (400)."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    return _error_response(
        400,
        "VALIDATION_ERROR",
        f"{first['field']}: {first['message']}" if first["field"] else first["message"],
        {"errors": errors},
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Last resort: never leak internals of unexpected failures."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error_response(
        500,
        "INTERNAL_ERROR",
        sanitize_error_message(str(exc), "Internal server error"),
    )


def create_app() -> FastAPI:
    """Build the application with middleware, handlers and routers."""
    application = FastAPI(
        title="Laptop Fleet Assignment API",
        description="""
    API for tracking laptops and who holds them.

    ## Features

    - **Laptops**: Register, edit, list and delete laptops
    - **Distribute / Return**: Hand a laptop to a person and take it back
    - **Distributions**: Browse active, returned and all distribution records

    A laptop has at most one active distribution at any time; returned
    records are kept as history.
    """,
        version="1.0.0",
        lifespan=lifespan,
    )

    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    application.add_exception_handler(LaptrackError, laptrack_exception_handler)
    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(Exception, generic_exception_handler)

    application.include_router(laptops_router)
    application.include_router(distributions_router)

    @application.get("/health")
    async def health():
        """Health check, including the database when one is configured."""
        pool = get_db_pool()
        if pool is None:
            return {"status": "healthy", "storage": "memory"}

        db = await check_database_health(pool)
        if not db["healthy"]:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "storage": "postgres",
                    "error": sanitize_error_message(db.get("error", ""), "Database error"),
                },
            )
        return {"status": "healthy", "storage": "postgres", "database": db}

    return application


app = create_app()


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.laptrack.assignment.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
