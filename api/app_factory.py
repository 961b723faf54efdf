"""FastAPI application factory and middleware setup."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from data_services.errors import GrowthError
from main_configs import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    MAIN_APP_DESCRIPTION,
    MAIN_APP_TITLE,
    MAIN_APP_VERSION,
)

logger = logging.getLogger("Growth Data Plane API")


def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.

    Includes:
    - CORS middleware
    - Health check endpoint
    - Storage error handler
    - Growth API routes

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=MAIN_APP_TITLE,
        description=MAIN_APP_DESCRIPTION,
        version=MAIN_APP_VERSION,
    )

    # --------------------
    # CORS Middleware
    # --------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=CORS_ALLOW_CREDENTIALS,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )

    # --------------------
    # Health Check
    # --------------------
    @app.get("/ping")
    def ping():
        """Health check endpoint."""
        return {"status": "ok"}

    # --------------------
    # Error Handlers
    # --------------------
    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Storage failure"})

    @app.exception_handler(GrowthError)
    async def growth_error_handler(request: Request, exc: GrowthError):
        logger.warning("Growth error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # --------------------
    # API Routes
    # --------------------
    from api.handlers import create_api_router

    app.include_router(create_api_router())

    return app
