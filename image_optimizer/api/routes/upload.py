# image_optimizer/api/routes/upload.py
# Endpoint for optimizing uploaded images

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from image_optimizer.api.dependencies import (
    get_processor,
    get_storage,
    optimize_options,
    read_image_upload,
)
from image_optimizer.api.schemas import ErrorResponse, OptimizedImageResult, OptimizeResponse
from image_optimizer.core.processors.image import (
    ImageProcessingError,
    ImageProcessor,
    OptimizeRequest,
)
from image_optimizer.services.storage import StorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post(
    "/optimize",
    response_model=OptimizeResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def optimize_image(
    content: Annotated[bytes, Depends(read_image_upload)],
    options: Annotated[OptimizeRequest, Depends(optimize_options)],
    storage: Annotated[StorageService, Depends(get_storage)],
    processor: Annotated[ImageProcessor, Depends(get_processor)],
):
    # Convert, compress and store an uploaded image
    file_id = storage.new_file_id()
    logger.info(
        "Processing image: sourceFormat=%s, targetFormat=%s, size=%s",
        options.source_format,
        options.format,
        len(content),
    )

    try:
        # Pillow work is blocking, keep it off the event loop
        optimized = await run_in_threadpool(
            processor.optimize, content, options, storage.temp_path(file_id)
        )

        try:
            output_path = storage.save_output(file_id, optimized.format, optimized.data)
        except OSError as e:
            raise ImageProcessingError(
                "final_processing", "Image processing failed in final stage", e
            ) from e
        logger.info("File written successfully to %s", output_path)

    except ImageProcessingError:
        raise
    except Exception as e:
        raise ImageProcessingError("processing", "Image processing failed", e) from e

    logger.info(
        "Image processed successfully: id=%s, format=%s, size=%s",
        file_id,
        optimized.format,
        optimized.size,
    )

    return OptimizeResponse(
        result=OptimizedImageResult(
            id=file_id,
            format=optimized.format,
            size=optimized.size,
            width=optimized.width,
            height=optimized.height,
            url=storage.public_file_url(file_id, optimized.format),
        )
    )
