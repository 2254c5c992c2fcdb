from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, async_engine, Base

# Import middleware and error handlers
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware
from app.common.exceptions import register_exception_handlers

# Import routers
from app.modules.pos.routers import sales_router

# Import models for table creation
import app.modules.auth.models
import app.modules.stores.models
import app.modules.customers.models
import app.modules.inventory.models
import app.modules.pos.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Ally360 POS API",
    description="Multi-tenant point-of-sale API built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(sales_router, prefix="/api/v1")


@app.get("/")
async def read_root():
    return {
        "message": "Ally360 POS API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Ally360 POS API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=sync_engine)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Ally360 POS API shutting down...")
    await async_engine.dispose()
