"""
Problem Collector Service
Backend API - FastAPI application driving crawl jobs on the problem backend
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from crawljobs.api import collector
from crawljobs.core.config import settings
from crawljobs.services.tracker_registry import tracker_registry

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop every poller and close the backend client on shutdown"""
    logger.info(f"Problem collector tracking jobs on {settings.API_BASE_URL}")
    yield
    logger.info("Shutting down problem collector")
    await tracker_registry.aclose()


app = FastAPI(
    title="Problem Collector API",
    description="Starts, tracks and resumes crawl jobs on the problem backend",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(collector.router, prefix=settings.API_V1_PREFIX, tags=["collector"])


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "ok", "service": "Problem Collector API"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "field": None
        }
    )
