"""
Storefront Backend Application.

FastAPI application with product catalog, order lookup,
Mercado Pago payment notifications and outbound webhooks.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger

from storefront.api.v1 import router as api_v1_router
from storefront.core.config import settings
from storefront.core.database import close_db, init_db
from storefront.core.logging import setup_logging
from storefront.modules.payments.provider import MercadoPagoClient, PaymentProviderConfig
from storefront.modules.payments.signature import SignatureVerifier
from storefront.modules.webhooks.dispatcher import WebhookDispatcher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging(settings.log_level)
    logger.info("Starting Storefront Backend...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Payment provider and outbound webhook clients
    app.state.payment_provider = MercadoPagoClient(
        PaymentProviderConfig.from_settings(settings)
    )
    app.state.signature_verifier = SignatureVerifier(settings.mp_webhook_secret)
    app.state.webhook_dispatcher = WebhookDispatcher(
        timeout=settings.webhook_dispatch_timeout
    )

    logger.info("Storefront Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Storefront Backend...")

    await app.state.payment_provider.close()
    await app.state.webhook_dispatcher.close()

    # Close database
    await close_db()

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Storefront Backend

    ## Features

    - **Payments**: Mercado Pago webhook verification and order reconciliation
    - **Shop**: Products, orders and inventory
    - **Webhooks**: Outbound notifications for catalog changes

    ## Documentation

    - [API Docs](/docs) - Interactive Swagger UI
    - [ReDoc](/redoc) - Alternative documentation
    """,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/", tags=["System"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "api": settings.api_v1_prefix,
    }
