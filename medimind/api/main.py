"""
MediMind API - Main Application Entry Point

FastAPI backend for hospital access control and HIPAA audit logging.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medimind.api.config import settings
from medimind.api.db.session import init_db, close_db
from medimind.api.exceptions import PolicyDenied, ResourceNotFound


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await init_db()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    # Shutdown
    await close_db()


async def policy_denied_handler(request: Request, exc: PolicyDenied) -> JSONResponse:
    logger.warning(
        "Denied %s %s: role=%s %s",
        request.method, request.url.path, exc.role, exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": exc.message},
    )


async def not_found_handler(request: Request, exc: ResourceNotFound) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": exc.message},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="MediMind - Hospital access control and HIPAA audit API",
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PolicyDenied, policy_denied_handler)
    app.add_exception_handler(ResourceNotFound, not_found_handler)

    # Include routers
    from medimind.api.access.routes import router as access_router
    from medimind.api.admin.routes import router as admin_router
    from medimind.api.compliance.routes import router as compliance_router

    app.include_router(access_router, prefix="/api/v1/access", tags=["Access"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])
    app.include_router(compliance_router, prefix="/api/v1/hipaa", tags=["HIPAA"])

    # Health check endpoint
    @app.get("/api/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "service": settings.APP_NAME,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medimind.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
