"""Tenant Auth Service

Main FastAPI application entry point.
Authentication for users of hosted tenant organizations.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenant_auth_service.api.routes import tenant_auth
from tenant_auth_service.config.settings import get_settings
from tenant_auth_service.domain.errors import AppError
from tenant_auth_service.domain.services.tenant_auth_service import initialize_tenant_auth_service
from tenant_auth_service.infrastructure.redis.client import (
    close_redis_client,
    get_redis_client,
    peek_redis_client,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    try:
        redis_client = await get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    service = initialize_tenant_auth_service(redis_client.get_client(), settings)
    logger.info("Tenant auth service initialized")

    yield

    # Shutdown
    logger.info("Shutting down Tenant Auth Service")
    await service.drain()
    await close_redis_client()
    logger.info("Redis connection closed")


# Create FastAPI application
app = FastAPI(
    title="Tenant Auth Service",
    version=settings.service_version,
    description="Tenant-scoped registration, login and membership management",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.get("/health")
async def root_health_check():
    """Liveness check"""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment
    }


@app.get("/health/ready")
async def readiness_check():
    """Readiness check: Redis must answer before traffic is routed here"""
    redis_client = peek_redis_client()
    redis_status = await redis_client.health_check() if redis_client else {"status": "disconnected"}
    ready = redis_status["status"] == "ok"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "redis": redis_status},
    )


app.include_router(tenant_auth.router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render business errors with their status and error code"""
    if exc.status_code >= 500:
        logger.error(f"Application error on {request.url.path}: {exc!r}")
    else:
        logger.info(f"Request rejected on {request.url.path}: {exc.error_code} {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tenant_auth_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
