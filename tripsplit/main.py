"""
FastAPI entrypoint for the TripSplit backend application.
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tripsplit.core.config import settings
from tripsplit.core.errors import register_exception_handlers
from tripsplit.core.logging import init_logging, request_context_middleware
from tripsplit.api.router import api_router
from tripsplit.db.session import init_db

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    init_logging(debug=settings.DEBUG, level_name=settings.LOG_LEVEL)

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Backend API for shared trip expenses and settlements",
        version="1.0.0"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)
    register_exception_handlers(app)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    if settings.AUTO_CREATE_TABLES:
        init_db()
        logger.info("database tables created")

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"message": f"{settings.APP_NAME} API is running"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
