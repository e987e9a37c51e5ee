"""
FastAPI application entry point for jobscout.

This is the main app that:
- Initializes FastAPI with CORS
- Wires the discovery pipeline and LLM metrics buffer into app state
- Registers all API routers
- Provides health check endpoint
- Sets up database connection lifecycle
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobscout import database
from jobscout.config import settings
from jobscout.services.discovery_runner import build_discovery_services
# Import API routers
from jobscout.api import jobs, llm_metrics, profile, runs

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    On startup: create tables, build the pipeline and metrics buffer
    On shutdown: close the browsers and database connections gracefully
    """
    # Startup
    logger.info("🚀 Starting jobscout API...")
    logger.info(f"📊 Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'configured'}")
    logger.info(f"🔧 Debug mode: {settings.debug}")

    await database.init_models()
    services = build_discovery_services(database.AsyncSessionLocal, settings)
    app.state.discovery = services
    app.state.llm_metrics = services.metrics

    yield

    # Shutdown
    logger.info("👋 Shutting down jobscout API...")
    await services.close()
    await database.engine.dispose()


# Initialize FastAPI app
app = FastAPI(
    title="jobscout API",
    description="API for discovering and reviewing job postings",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
# Set ALLOWED_ORIGINS environment variable with comma-separated domains
allowed_origins = [
    "http://localhost:3000",  # Local development
]

if settings.allowed_origins:
    allowed_origins.extend(settings.allowed_origins.split(','))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {
        "status": "healthy",
        "service": "jobscout API",
        "version": "1.0.0",
    }


# Root endpoint
@app.get("/")
async def root():
    """API root with basic info."""
    return {
        "message": "jobscout API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# Register API routers
app.include_router(profile.router, prefix="/api", tags=["profile"])
app.include_router(runs.router, prefix="/api/runs", tags=["runs"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
app.include_router(llm_metrics.router, prefix="/api/llm-metrics", tags=["llm-metrics"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
