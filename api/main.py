"""
FastAPI main application for the Tile Visualizer
"""
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

# Add api directory to path for imports (works both locally and from the repo root)
api_dir = os.path.dirname(os.path.abspath(__file__))
if api_dir not in sys.path:
    sys.path.insert(0, api_dir)

from config.material_catalog import default_catalog  # noqa: E402
from core.config import settings  # noqa: E402
from core.exceptions import VisualizationError  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from middleware import RequestLoggingMiddleware  # noqa: E402
from routers import artifacts, visualize  # noqa: E402
from schemas.visualization import HealthResponse  # noqa: E402
from services.artifact_store import ArtifactStore, run_artifact_sweeper  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    logger.info("=" * 60)
    logger.info("ENVIRONMENT VARIABLES CHECK")
    logger.info("=" * 60)

    token = settings.replicate_api_token
    if token:
        key_preview = f"{token[:5]}...{token[-4:]}" if len(token) > 9 else "***"
        logger.info(f"✅ REPLICATE_API_TOKEN is set: {key_preview}")
    else:
        logger.error("❌ REPLICATE_API_TOKEN is NOT set - Visualization will not work!")

    logger.info(f"Server root: {settings.resolved_server_root}")
    logger.info(f"Public dir: {settings.resolved_public_dir}")
    logger.info("=" * 60)

    for directory in (settings.resolved_public_dir, settings.resolved_upload_dir, settings.resolved_staging_dir):
        directory.mkdir(parents=True, exist_ok=True)

    for tile_id, path in default_catalog(settings.resolved_tiles_dir).missing_files().items():
        logger.warning(f"Catalog tile {tile_id} is missing on disk: {path}")

    sweeper = None
    if settings.artifact_sweep_enabled:
        store = ArtifactStore(settings.resolved_public_dir, settings.artifact_prefix)
        sweeper = asyncio.create_task(
            run_artifact_sweeper(store, settings.artifact_max_age_seconds, settings.artifact_sweep_interval_seconds)
        )
        logger.info(
            f"Artifact sweep enabled: max age {settings.artifact_max_age_seconds}s, "
            f"every {settings.artifact_sweep_interval_seconds}s"
        )

    logger.info("Application started")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    logger.info("Application stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Replaces the floor and/or walls of a room photo with a chosen tile",
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(VisualizationError)
async def visualization_error_handler(request: Request, exc: VisualizationError):
    if exc.status_code >= 500:
        logger.error(f"Visualization failed: {exc.error}: {exc.message}")
    else:
        logger.warning(f"Rejected visualization request: {exc.error}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "message": "Invalid request",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    content = {"success": False, "error": "Internal server error", "message": str(exc)}
    if settings.debug:
        content["details"] = {"type": type(exc).__name__}
    return JSONResponse(status_code=500, content=content)


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for load balancers"""
    return HealthResponse()


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs" if settings.environment == "development" else None,
        "endpoints": {
            "health": "/health",
            "visualize": "/api/visualize",
        },
    }


# Include routers
app.include_router(visualize.router, prefix="/api")

# Mount static files for serving tiles and renders
if settings.resolved_public_dir.is_dir():
    app.mount("/public", StaticFiles(directory=str(settings.resolved_public_dir)), name="public")

# Catch-all artifact route goes last
app.include_router(artifacts.router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # We handle this in middleware
    )
