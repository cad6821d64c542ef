"""
Phased Learning Backend - FastAPI Application

Entry point for the adaptive learning-progress API. Learning rules live in
the learning package, storage in the persistence package; this module only
wires them into an application.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings, validate_required_settings
from learning.api import sessions
from learning.context import LearningContext, build_context

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(context: Optional[LearningContext] = None) -> FastAPI:
    """
    Build the application around a LearningContext.

    Without an explicit context the settings are validated and the context
    is built for the configured storage backend.
    """
    if context is None:
        settings = get_settings()
        validate_required_settings(settings)
        configure_logging(settings.log_level)
        context = build_context(settings)

    app = FastAPI(
        title="Phased Learning Backend",
        description="Learning-progress state machine for phased adaptive tutoring",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.learning = context

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sessions.router)
    app.include_router(sessions.courses_router)

    @app.get("/health", tags=["health"])
    def health(request: Request):
        """Liveness check, plus database connectivity for the sql backend."""
        ctx: LearningContext = request.app.state.learning
        result = {
            "status": "ok",
            "service": "Phased Learning Backend",
            "storage_backend": ctx.settings.storage_backend,
        }
        if ctx.db_manager is not None:
            result["database"] = "connected" if ctx.db_manager.health_check() else "connection_failed"
        return result

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.learning.close()
        logger.info("Application stopped")

    logger.info("Application created")
    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
