"""
Imaging Triage API

Serves the remote analysis function used by the medical imaging triage
application.

This API provides:
- AI classification of X-ray, CT, MRI and skin images
- Distinct error categories for rate limiting and exhausted credits
- Structured fallback results for loosely formatted model output
- Comprehensive logging and observability
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.config import Settings, get_settings
from config.logging_config import configure_logging, get_logger, log_request_context
from database.database import close_connection
from database.kv_store import get_kv_store
from models.models import (
    AnalysisRequest,
    AnalysisResult,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
)
from services.analysis_service import AnalysisError, ImageAnalysisService, get_analysis_service

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events with proper logging.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    yield

    # Shutdown
    logger.info("Application shutting down")
    if settings.storage_backend == "arango":
        close_connection()


def error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    """Build a structured error body carrying the request ID."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json"),
    )


def storage_reachable(settings: Settings) -> bool:
    """Whether the configured persistence backend answers."""
    try:
        get_kv_store(settings).keys()
    except Exception as e:
        logger.warning("Storage check failed", backend=settings.storage_backend, error=str(e))
        return False
    return True


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with structured response."""
        return error_response(request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))

    @app.exception_handler(AnalysisError)
    async def analysis_exception_handler(request: Request, exc: AnalysisError):
        """Surface gateway failures under their own status and category."""
        return error_response(request, exc.status_code, exc.code, str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root(settings: Settings = Depends(get_settings)):
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns system health status and component checks.
        """
        checks = {
            "api": True,
            "ai_gateway_configured": bool(settings.ai_gateway_api_key),
            "storage": storage_reachable(settings),
        }

        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    @app.post("/functions/v1/analyze-image", response_model=AnalysisResult, tags=["Functions"])
    async def analyze_image(
        payload: AnalysisRequest,
        request: Request,
        service: ImageAnalysisService = Depends(get_analysis_service),
    ):
        """
        Classify a medical image.

        **Errors:**
        - 429 `RATE_LIMITED`: the AI gateway is throttling requests
        - 402 `QUOTA_EXHAUSTED`: AI credits are used up
        - 500 `UPSTREAM_ERROR` / `NOT_CONFIGURED` / `INTERNAL_ERROR`
        """
        logger.info(
            "Analysis request received",
            imaging_type=payload.imaging_type.value,
            body_region=payload.body_region or None,
        )

        try:
            return await service.analyze(payload)
        except AnalysisError:
            raise
        except Exception as e:
            logger.exception("Analysis crashed", error=str(e))
            return error_response(request, 500, "INTERNAL_ERROR", str(e) or "Unknown error")


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
