"""
Token Sale API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from api import __version__
from api.dependencies import ServiceContainer, build_container
from api.models import ErrorResponse
from api.routers import deposits, purchases, quotes, sale
from config.settings import load_settings
from domain.errors import InvalidInput

logger = logging.getLogger(__name__)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: Prebuilt services (tests inject fakes); built from the
            environment when omitted
    """
    if container is None:
        container = build_container(load_settings())
    settings = container.settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for session in container.session_manager.active_sessions():
            container.session_manager.close(session.session_id)
        container.close()
        logger.info("Services closed")

    app = FastAPI(
        title="Token Sale API",
        description="REST API for the token sale storefront: pricing, purchases, deposits and referrals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = ErrorResponse(
            error="Invalid request",
            detail=_format_validation_errors(exc),
            status_code=400,
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        body = ErrorResponse(error="Invalid request", detail=str(exc), status_code=400)
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "token-sale-api"
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Token Sale API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    app.include_router(sale.router, prefix="/api", tags=["Sale"])
    app.include_router(quotes.router, prefix="/api", tags=["Quotes"])
    app.include_router(purchases.router, prefix="/api", tags=["Purchases"])
    app.include_router(deposits.router, prefix="/api", tags=["Deposits"])

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("api.main:app", host="0.0.0.0", port=port)
