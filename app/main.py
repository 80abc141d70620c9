"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the API routers.
"""
import os
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logging_config import configure_logging

from .api.routers import imports

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level, settings.import_worker_log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        print("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    try:
        from .db.models import create_users_table

        print("Initializing database tables...")
        create_users_table()
        print("✓ users table ready")
    except Exception as e:
        print(f"ERROR: Failed to initialize database tables: {e}")
        print("The application cannot start without proper database setup.")
        raise

    yield


app = FastAPI(
    title="Teamshare Import API",
    version="1.0.0",
    description="Concurrent bulk user import for the Teamshare resource-sharing backend",
    lifespan=lifespan
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Teamshare Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }
