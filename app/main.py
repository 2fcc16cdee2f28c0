from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.errors import StorageUnavailableError
from app.database import init_db, async_session_factory

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create pricing tables that do not exist yet (migrations own schema changes)
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Coupons", "description": "Coupon management, validation and discount calculation"},
    {"name": "Gift Cards", "description": "Gift card issuing, balance checks and redemption"},
    {"name": "Loyalty", "description": "Loyalty accounts, earning and point redemption"},
    {"name": "Pricing", "description": "Order totals, quotes and instrument application"},
]

API_DESCRIPTION = """
## Restaurant Pricing Engine

Computes order totals (subtotal, tax, delivery fee, tip, discount) and
resolves the discount instruments a customer brings to checkout.

### Error responses

| Code | Description |
|------|-------------|
| 400 | Business rule failure: `{success, error, error_code}` |
| 404 | Unknown coupon / gift card on admin reads |
| 422 | Request body failed validation |
| 503 | Data store unavailable, try again |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=503, content=exc.to_dict())


# Global exception handler so unexpected failures still return JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    # Preserve HTTP status code for HTTPException, default to 500 for others
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        error_message = exc.detail
    else:
        status_code = 500
        error_message = "Internal server error"
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    error_detail = {
        "success": False,
        "error": error_message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
    }
    if settings.DEBUG:
        error_detail["detail"] = str(exc)

    response = JSONResponse(status_code=status_code, content=error_detail)

    # Add CORS headers if origin is allowed
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.warning(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = "unavailable"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
