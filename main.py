"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.cache import (
    init_redis_cache,
    init_request_cache,
    shutdown_redis_cache,
    shutdown_request_cache,
)
from infrastructure.database import create_tables


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    # Tables are auto-created in development only; elsewhere run `alembic upgrade head`
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_migrations_required", message="Run alembic upgrade head")

    if settings.redis.url:
        try:
            await init_redis_cache()
            logger.info("redis_cache_initialized")
        except Exception as exc:
            # Webhook dedupe is skipped without Redis; the app still serves
            logger.error("redis_cache_init_failed", error=str(exc))

    init_request_cache()
    logger.info("application_started", environment=settings.ENVIRONMENT)

    yield

    shutdown_request_cache()
    if settings.redis.url:
        await shutdown_redis_cache()
        logger.info("redis_cache_shutdown")
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Course checkout: payment intents, verification and gateway webhooks",
)

# Middleware runs bottom-up: CORS, logging, then request id outermost
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
