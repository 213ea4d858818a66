"""
DreamBoat API - AI photo generation for dating profiles
FastAPI Backend Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from dreamboat.core.config import settings
from dreamboat.core.database import SessionLocal, init_db
from dreamboat.core.redis import redis_health_check
from dreamboat.api import generate, jobs, payments, photos, profile

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(f"Starting {settings.APP_NAME}...")
    init_db()
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Paid photo generation: batched synthesis, payment gating and photo validation",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(generate.router, prefix="/api/v1", tags=["Generation"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])
app.include_router(photos.router, prefix="/api/v1/photos", tags=["Photos"])
app.include_router(profile.router, prefix="/api/v1/profile", tags=["Profile"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])


@app.get("/health", tags=["Health"])
async def health_check():
    """Status of the database and Redis."""
    status = {
        "status": "healthy",
        "version": VERSION,
        "environment": {
            "storage": "local" if settings.USE_LOCAL_STORAGE else "s3",
            "database": "sqlite" if settings.DATABASE_URL.startswith("sqlite") else "postgresql",
        },
        "services": {}
    }

    # Check database connection
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        status["services"]["database"] = "ok"
    except Exception as e:
        status["services"]["database"] = f"error: {str(e)}"
        status["status"] = "degraded"

    # Check Redis connection
    redis_status = redis_health_check()
    if redis_status.get("connected"):
        status["services"]["redis"] = "ok"
    else:
        status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
        status["status"] = "degraded"

    return status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "docs": "/docs",
        "health": "/health",
    }
