"""
Atelier Shipping Backend
FastAPI application entry point

- Melhor Envio quotes, labels and tracking under /api/shipping
- Melhor Envio status webhook under /api/webhooks
- Error sanitization middleware
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from atelier.api.routes import shipping, webhooks
from atelier.core.config import settings
from atelier.core.database import AsyncSessionLocal, engine
from atelier.core.error_handler import ErrorSanitizationMiddleware
from atelier.modules.shipping.carriers import CarrierFactory

# Import models to register them with SQLAlchemy
from atelier.models import (  # noqa: F401
    Customer, ShirtModel, DesignTask, DesignTaskLayout, Quote,
    ShippingCarrier, CompanySettings, ShipmentHistory,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration on startup and dispose the engine on shutdown."""
    carriers = [code.value for code in CarrierFactory.get_registered_carriers()]
    logger.info(
        f"{settings.APP_NAME} started ({settings.ENVIRONMENT}); "
        f"carriers: {', '.join(carriers)}; Melhor Envio env: {settings.MELHOR_ENVIO_ENVIRONMENT}"
    )

    yield

    await engine.dispose()
    logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="Shipping quotes and fulfillment for custom uniform orders",
    version="0.1.0",
    openapi_tags=[
        {"name": "Shipping", "description": "Melhor Envio quotes, labels and tracking"},
        {"name": "Webhooks", "description": "Carrier status notifications"},
        {"name": "Health", "description": "Liveness checks"},
    ],
)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

# CORS - adjust origins for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(shipping.router, prefix="/api", tags=["Shipping"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "0.1.0",
        "status": "operational",
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with a DB ping.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check database ping failed: {type(e).__name__}")
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
