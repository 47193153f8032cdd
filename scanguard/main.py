"""
Main FastAPI application entry point.
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from scanguard.core.config import settings
from scanguard.core.database import engine, Base, SessionLocal
from scanguard.core.logging_config import setup_logging
from scanguard.api.v1.router import api_router
from scanguard.middleware.request_logging import RequestLoggingMiddleware
from scanguard.services.scan_service import ScanService

# Import all models to ensure they register with Base.metadata
from scanguard.models import (  # noqa: F401
    Scan,
    Vulnerability,
    ComplianceResult,
    SbomComponent,
    AnalysisLog,
    CveCache,
)

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations when DATABASE_URL is set (cloud deployment)."""
    if not os.getenv("DATABASE_URL"):
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")
        return
    try:
        from alembic.config import Config
        from alembic import command

        logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations...")
        command.upgrade(Config("alembic.ini"), "head")
        logger.info("[MIGRATION] Alembic migrations completed successfully (or already up-to-date)")
    except Exception as e:
        # Migrations may already have run, or the database may not be ready yet
        trace_id = str(uuid.uuid4())
        logger.warning(f"[MIGRATION] [{trace_id}] Alembic migration check failed: {e}")
        logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)


def sweep_stale_scans() -> None:
    """Fail scans left mid-pipeline by a previous process."""
    db = SessionLocal()
    try:
        failed = ScanService(db).fail_stale_scans(settings.STALE_SCAN_TIMEOUT_MINUTES)
        if not failed:
            logger.info("No stale scans found at startup")
    except Exception as e:
        db.rollback()
        logger.warning(f"Stale scan sweep failed at startup: {e}")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Starting up {settings.APP_NAME} API...")

    run_migrations()

    # Ensure database tables are created (fallback for local dev without Alembic)
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)
        # Don't fail startup - let the health endpoint report the issue

    # Test database connectivity
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.error(f"[{trace_id}] Database connectivity test failed: {e}", exc_info=True)

    sweep_stale_scans()

    yield
    logger.info(f"Shutting down {settings.APP_NAME} API...")


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="ECU firmware security scans: pipeline, vulnerabilities, compliance, SBOM and reports",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Request logging middleware (must be added before other middleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL / migrations"
        error_type = "DatabaseError"
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """
    Liveness check for load balancers.

    Returns 200 immediately without DB checks. Use /health/db for readiness.
    """
    return {"status": "ok"}


@app.get("/health/db")
async def health_check_db():
    """
    Database health check endpoint.

    Returns 200 if database is accessible, 503 if not.
    """
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.warning(f"[{trace_id}] Database health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "trace_id": trace_id,
            }
        )
