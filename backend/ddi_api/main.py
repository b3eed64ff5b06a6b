"""
FastAPI application entry point.

This module configures the FastAPI application with:
- CORS middleware
- Security headers middleware
- Health check endpoints
- DDI resource routers
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ddi_api import __version__
from ddi_api.config import get_settings
from ddi_api.dependencies import get_data_store
from ddi_api.routers import resources
from ddi_api.schemas.ddi import HealthResponse, ResolutionLevel, ServiceInfo

SERVICE_NAME = "DDI API Mock Server"

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Only add HSTS in production
        if get_settings().env == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the DDI collections before serving requests."""
    settings = get_settings()
    get_data_store()
    logger.info(
        f"{SERVICE_NAME} serving {settings.data_dir} under {settings.api_prefix or '/'}"
    )
    yield


def service_info() -> ServiceInfo:
    """Describe the served endpoints and their query parameters."""
    settings = get_settings()
    prefix = settings.api_prefix
    return ServiceInfo(
        service=SERVICE_NAME,
        version=__version__,
        endpoints={
            "health": {"item": "/health"},
            **{
                route.path: {
                    "list": f"{prefix}/{route.path}",
                    "item": f"{prefix}/{route.path}/{{{route.id_name}}}",
                }
                for route in resources.RESOURCE_ROUTES
            },
        },
        queryParameters={
            "references": {
                "description": "Control how referenced objects are returned",
                "values": [level.value for level in ResolutionLevel],
                "default": settings.default_references,
            },
            "filtering": {
                "description": "Filter resources by various criteria",
                "supported": [
                    "urn",
                    "agencyID",
                    "resourceID",
                    "version",
                    "search",
                    "offset",
                    "limit",
                ],
            },
            "format": {
                "description": "json (default) or xml, also negotiable via Accept",
                "xmlMediaType": settings.xml_media_type,
            },
        },
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=SERVICE_NAME,
        description=(
            "Mock implementation of the DDI REST API. Serves DDI 3.3 resources "
            "as JSON or DDI XML with optional reference resolution."
        ),
        version=__version__,
        docs_url="/api/docs" if settings.env != "production" else None,
        redoc_url="/api/redoc" if settings.env != "production" else None,
        openapi_url="/api/openapi.json" if settings.env != "production" else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(resources.router, prefix=settings.api_prefix)

    @app.get("/", tags=["health"], response_model=ServiceInfo)
    async def root() -> ServiceInfo:
        """Service document listing the available endpoints."""
        return service_info()

    # Health check endpoints
    @app.get("/health", tags=["health"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Basic health check."""
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/health/liveness", tags=["health"])
    async def liveness_check():
        """Kubernetes liveness probe."""
        return {"status": "alive"}

    @app.get("/health/readiness", tags=["health"])
    async def readiness_check():
        """Kubernetes readiness probe."""
        if not settings.data_dir.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "not ready", "reason": "Data directory unavailable"},
            )
        return {"status": "ready"}

    @app.get("/health/startup", tags=["health"])
    async def startup_check():
        """Kubernetes startup probe."""
        return {"status": "started"}

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.exception(f"Unhandled error on {request.url.path}")
        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={"detail": str(exc), "type": type(exc).__name__},
            )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_application()


def run() -> None:
    """Run the mock server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ddi_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.env == "development",
        workers=1 if settings.env == "development" else settings.workers,
    )


if __name__ == "__main__":
    run()
