from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import uuid

# Local imports
from alivecheck.core.config import settings
from alivecheck.api.routes import router as api_router
from alivecheck.logging import configure_logging
from alivecheck.middleware.logging import LoggingMiddleware
from alivecheck.services.geocoding import geocoder_class
from alivecheck.services.location_cache import LocationCache
from alivecheck.services.location_provider import build_location_provider

configure_logging()
logger = logging.getLogger(__name__)

# --- Application Lifecycle Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Application startup: v{settings.VERSION}")
    # Misconfigured backends fail here, not inside a request
    app.state.geocoder_factory = geocoder_class()
    cache = LocationCache.from_settings()
    try:
        app.state.location_provider = build_location_provider(cache)
    except ValueError:
        await cache.aclose()
        raise
    app.state.location_cache = cache
    logger.info(
        f"Location provider: {settings.LOCATION_PROVIDER}, geocoder: {settings.GEOCODER}, "
        f"redis cache: {settings.ENABLE_REDIS}"
    )

    yield

    logger.info("Application shutdown: Cleaning up resources.")
    await cache.aclose()

# --- FastAPI Application Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.BRIEF_DESCRIPTION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

app.add_middleware(LoggingMiddleware)

# --- API Routes ---
app.include_router(api_router, prefix="/api")

# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    return {
        "status": "ok",
        "version": settings.VERSION,
        "location_provider": settings.LOCATION_PROVIDER,
        "geocoder": settings.GEOCODER,
    }

# --- Global Exception Handler (for unhandled errors) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    logger.error(f"Unhandled exception (ID: {error_id}): {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_SERVER_ERROR",
                "detail": "An unexpected error occurred. Please report this error ID.",
                "error_id": error_id
            }
        }
    )
