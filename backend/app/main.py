from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from contextlib import asynccontextmanager
import logging
import time

from app.config import settings
from app.database import engine, Base, get_db
from app.errors import TrackerError
from app.logging_config import setup_logging
from app.routers import auth, devices, gameplay, backups

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Handheld Tracker API...")
    # Create tables if they don't exist
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown
    logger.info("Shutting down Handheld Tracker API...")


app = FastAPI(
    title="Handheld Tracker API",
    description="""
    Handheld Tracker - Gameplay and save backups for handheld consoles

    ## Features

    - **Gameplay Tracking**: Devices start, ping and end play sessions
    - **Statistics**: Playtime per game and per day, public profiles
    - **Devices**: Register devices and see when they were last online
    - **Save Backups**: Upload, download and delete save archives

    ## Authentication

    - Web client: `Authorization: Bearer <token>` from `/auth/login`
    - Device agent: `X-API-Key` header with the account API key
    """,
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code}
    )


# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(devices.router, prefix="/api/v1")
app.include_router(gameplay.router, prefix="/api/v1")
app.include_router(backups.router, prefix="/api/v1")


@app.get("/")
def root():
    return {
        "name": "Handheld Tracker API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.warning(f"Health check could not reach the database: {str(e)}")
        database = "disconnected"
    return {
        "status": "ok",
        "timestamp": int(time.time() * 1000),
        "database": database
    }


@app.get("/api/v1")
def api_info():
    return {
        "version": "1.0.0",
        "endpoints": {
            "auth": "/api/v1/auth",
            "devices": "/api/v1/devices",
            "gameplay": "/api/v1/gameplay",
            "backups": "/api/v1/backups"
        }
    }
