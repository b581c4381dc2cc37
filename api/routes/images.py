"""
Guardian Shield - Step image API routes.

Upload of step images, and the public router that serves the stored files.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from api.dependencies import get_images
from api.middleware.rate_limit import enforce_rate_limit
from api.services.image_service import ImageService
from shared.config import get_settings
from shared.image_security import ImageSecurityError, validate_filename

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/images/upload")
async def upload_image(
    request: Request,
    file: UploadFile = File(...),
    images: ImageService = Depends(get_images),
) -> JSONResponse:
    """
    Upload a step image with rate limiting and security validation.

    The returned url can be attached to any step (PUT .../steps/{index}/image).
    """
    enforce_rate_limit(request, "upload", get_settings().IMAGE_UPLOAD_RATE_LIMIT)

    result = await images.upload_image(file)

    logger.info(
        f"Image uploaded: {result['filename']}",
        extra={"request_path": request.url.path},
    )
    return JSONResponse(status_code=201, content=result)


# =============================================================================
# Public endpoint for serving images
# =============================================================================


def get_public_image_router() -> APIRouter:
    """Router serving stored step images; mounted under IMAGE_BASE_URL."""
    public_router = APIRouter()

    @public_router.get("/{filename}", response_model=None)
    async def serve_image(filename: str) -> FileResponse | JSONResponse:
        """Serve an uploaded or generated image file by its stored name."""
        try:
            safe_filename = validate_filename(filename)
        except ImageSecurityError as e:
            logger.warning(f"Invalid filename requested: {filename} | Error: {e}")
            return JSONResponse(status_code=400, content={"detail": "Invalid filename"})

        upload_dir = Path(get_settings().IMAGE_UPLOAD_DIR).resolve()
        file_path = (upload_dir / safe_filename).resolve()

        if not file_path.is_relative_to(upload_dir):
            logger.error(f"Path traversal attempt detected: {filename} -> {file_path}")
            return JSONResponse(status_code=403, content={"detail": "Access denied"})

        if not file_path.is_file():
            return JSONResponse(status_code=404, content={"detail": "Image not found"})

        return FileResponse(file_path)

    return public_router
