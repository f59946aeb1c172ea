"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timeclock.config import settings
from timeclock.database import database
from timeclock.repositories.clock_repository import ClockRepository
from timeclock.routers import time

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await database.connect()
    await ClockRepository(database.db).ensure_indexes()
    yield
    # Shutdown
    await database.disconnect()


app = FastAPI(
    title="Time Tracking API",
    description="Work session tracking: clock in/out, lunch breaks and hour caps",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(time.router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "message": "Time Tracking API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
