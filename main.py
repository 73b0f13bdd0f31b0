"""
UnitTrack - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db, close_db
from app.utils.error_handling import (
    setup_exception_handlers,
    ErrorTrackingMiddleware,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Remote inventory API: {settings.remote_api_base_url}")
    if not settings.has_remote_credentials:
        logger.warning("Remote inventory credentials are not configured; sync and replication will fail")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Unit-level inventory tracking, warehouse transfers and remote stock reconciliation",
    version=settings.api_version,
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ErrorTrackingMiddleware)

setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.api_version,
        "status": "running",
        "environment": settings.app_env,
        "api_docs": "/api/docs" if settings.is_development else "disabled",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "remote_inventory_configured": settings.has_remote_credentials,
        "remote_replication_enabled": settings.enable_remote_replication,
    }


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "inventory_sync": "/api/v1/inventory-sync",
            "warehouse_transfers": "/api/v1/warehouse-transfers",
            "shrinkage": "/api/v1/shrinkage",
        }
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

from app.routers import inventory_sync, warehouse_transfers, shrinkage

# Remote stock reconciliation
app.include_router(inventory_sync.router, prefix="/api/v1", tags=["Inventory Sync"])

# Transfers between cabinets and warehouses
app.include_router(warehouse_transfers.router, prefix="/api/v1/warehouse-transfers", tags=["Warehouse Transfers"])

# Shrinkage ledger
app.include_router(shrinkage.router, prefix="/api/v1/shrinkage", tags=["Shrinkage"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=5120,
        reload=settings.is_development,
    )
