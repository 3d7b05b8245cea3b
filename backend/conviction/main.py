"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from prometheus_fastapi_instrumentator import Instrumentator
from loguru import logger

from conviction.core.config import settings
from conviction.core.logging import setup_logging
from conviction.api.deps import shutdown_services
from conviction.api.v1.router import api_router
from conviction.db import session as db_session


PROVIDER_KEYS = {
    "birdeye": settings.BIRDEYE_API_KEY,
    "helius": settings.HELIUS_API_KEY,
    "alchemy": settings.ALCHEMY_API_KEY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events"""
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    if db_session.engine is None:
        logger.info("DATABASE_URL not set; persistence endpoints disabled")

    # Initialize Sentry if configured
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            environment=settings.SENTRY_ENVIRONMENT,
        )
        logger.info("Sentry monitoring initialized")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await shutdown_services()
    if db_session.engine is not None:
        await db_session.engine.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Wallet conviction scoring and patience tax analysis API",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid input is a 400, not FastAPI's default 422"""
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")

# Setup Prometheus metrics
if settings.ENVIRONMENT == "production":
    Instrumentator().instrument(app).expose(app)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness plus a summary of what is wired up.

    Transaction providers are listed per chain in fallback order with
    whether their credentials are present; keyless providers always are.
    """
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "persistence": db_session.engine is not None,
        "cache": "redis" if settings.REDIS_URL else "memory",
        "providers": {
            chain: {name: bool(PROVIDER_KEYS.get(name, True)) for name in names}
            for chain, names in settings.TRADE_PROVIDERS.items()
        },
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "chains": list(settings.TRADE_PROVIDERS),
        "docs": "/docs" if settings.DEBUG else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "conviction.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        workers=settings.WORKERS if not settings.RELOAD else 1,
        log_level=settings.LOG_LEVEL.lower(),
    )
