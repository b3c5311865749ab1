from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from retouch import config
from retouch.application.dtos.common_dto import HealthResponse, RootResponse
from retouch.domain.errors import DecodeError, NotFoundError, UpstreamError, ValidationError
from retouch.infrastructure.api.middlewares import add_default_middlewares
from retouch.infrastructure.api.routes.edit_routes import router as edit_router
from retouch.infrastructure.api.routes.history_routes import router as history_router
from retouch.infrastructure.api.routes.image_routes import router as image_router
from retouch.infrastructure.database.postgres_client import get_postgres_client

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    DecodeError: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    pg = get_postgres_client()
    if pg is not None:
        pg.apply_schema()
        logger.info("PostgreSQL schema applied")
    yield
    if pg is not None:
        pg.close()


def _register_error_handlers(app: FastAPI) -> None:
    for error_type, code in _ERROR_STATUS.items():

        async def handler(request: Request, exc: Exception, code: int = code) -> JSONResponse:
            if code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            return JSONResponse(status_code=code, content={"detail": str(exc)})

        app.add_exception_handler(error_type, handler)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        title="Retouch Backend",
        version="0.1.0",
        lifespan=lifespan,
        description="""
        ## Retouch Backend API

        FastAPI backend for AI-assisted photo editing: generative edits through
        an image model and parametric adjustments computed with NumPy, with
        result caching, per-edit history and Supabase or PostgreSQL storage.

        ### Features
        - **Edits**: Upload an image, poll its status, rename and delete it
        - **Generative Edits**: Plain-language edits, cached per strength
        - **Parametric Edits**: Brightness, contrast, saturation, hue, sharpen
          and noise reduction, scaled by a 0-100 strength
        - **History**: Ordered ledger of applied adjustments with undo/redo
        - **Suggestions**: Vision analysis with a static fallback

        ### Authentication
        All endpoints except root, health and image downloads require a Bearer
        token in the Authorization header:
        ```
        Authorization: Bearer your-jwt-token
        ```

        ### Error Responses
        - **400 Bad Request**: Undecodable image or invalid parameters
        - **401 Unauthorized**: Missing or invalid authentication token
        - **404 Not Found**: Edit or image does not exist or user doesn't have access
        - **422 Unprocessable Entity**: Validation error in request body
        - **502 Bad Gateway**: Generation or analysis service failure
        """,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    add_default_middlewares(app)
    _register_error_handlers(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the Retouch API",
        response_description="API information including status and version",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "retouch-backend", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
        response_description="Health status of the API service",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(edit_router)
    app.include_router(history_router)
    app.include_router(image_router)
    return app


app = create_app()
