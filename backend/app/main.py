"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.middleware import setup_cors_middleware, security_middleware, global_exception_handler
from app.core.otel import initialize_otel, setup_otel_logging, instrument_app
from app.db.redis import get_redis_client
from app.db.session import engine, init_db
from app.services.email_service import validate_email_config

# Import routers
from app.api import (
    admin, audience, auth, campaigns, events, inbox, messaging, templates, unsubscribe, webhooks
)
from app.api import settings as settings_router

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    if initialize_otel():
        if setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry metrics/traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    email_ok, email_error = validate_email_config()
    if not email_ok:
        logger.warning(f"Email provider not fully configured: {email_error}")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="BDE Admin Backend",
    description="Events, ticketing, messaging and email marketing for the student association",
    version="1.0.0",
    lifespan=lifespan
)

instrument_app(app, engine)
setup_cors_middleware(app)
app.middleware("http")(security_middleware)
app.add_exception_handler(Exception, global_exception_handler)

# Include routers
app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(settings_router.router)
app.include_router(events.router)
app.include_router(events.public_router)  # Separate router for /api/public (no login)
app.include_router(messaging.router)
app.include_router(messaging.public_router)
app.include_router(inbox.router)
app.include_router(audience.router)
app.include_router(unsubscribe.router)
app.include_router(campaigns.router)
app.include_router(templates.router)
app.include_router(webhooks.router)


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
