# image_optimizer/main.py
# Main app setup

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from image_optimizer.api.dependencies import UploadRejected
from image_optimizer.api.routes import health, upload
from image_optimizer.api.schemas import AppInfoResponse, ErrorResponse
from image_optimizer.config import Settings, get_settings
from image_optimizer.core.processors.image import ImageProcessingError
from image_optimizer.logging_config import configure_logging
from image_optimizer.services.storage import get_storage_service

logger = logging.getLogger(__name__)

UPLOADS_ROUTE = "/uploads"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run when app starts and stops
    storage = get_storage_service()
    logger.info("Optimized images are stored in %s", storage.upload_dir.resolve())
    logger.info("API docs are served at /docs")
    yield


async def upload_rejected_handler(request: Request, exc: UploadRejected):
    logger.warning("Upload rejected: %s (%s)", exc.error, exc.details)
    body = ErrorResponse(error=exc.error, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # A "file" part that is not an upload counts as no file at all
    if any(tuple(err.get("loc", ())) == ("body", "file") for err in exc.errors()):
        return await upload_rejected_handler(request, UploadRejected("Invalid file data"))
    return await request_validation_exception_handler(request, exc)


async def processing_error_handler(request: Request, exc: ImageProcessingError):
    logger.error("Image optimization failed at stage %s: %s", exc.stage, exc.details)
    body = ErrorResponse(error=exc.message, details=exc.details, stage=exc.stage)
    return JSONResponse(status_code=500, content=body.model_dump())


def mount_static(app: FastAPI, settings: Settings) -> None:
    # Stored outputs, then the uploader page (or a JSON root when absent)
    storage = get_storage_service()
    app.mount(
        UPLOADS_ROUTE,
        StaticFiles(directory=storage.upload_dir),
        name="uploads",
    )

    public_dir = settings.PUBLIC_DIR
    if (public_dir / "index.html").is_file():
        # Mounted last so it only catches paths no route claimed
        app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")
    else:

        @app.get("/", response_model=AppInfoResponse, tags=["default"])
        async def root():
            # Basic info endpoint
            return AppInfoResponse(app=settings.APP_NAME, version=settings.APP_VERSION)


def create_app() -> FastAPI:
    # Create the FastAPI app
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.APP_DESCRIPTION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs",
        openapi_url="/docs/json",
        redoc_url=None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=settings.COMPRESSION_MINIMUM_SIZE)

    app.add_exception_handler(UploadRejected, upload_rejected_handler)
    app.add_exception_handler(ImageProcessingError, processing_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Register API routes
    app.include_router(health.router)
    app.include_router(upload.router)

    mount_static(app, settings)

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "image_optimizer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
