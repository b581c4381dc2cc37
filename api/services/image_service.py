"""
Guardian Shield - Image Storage Service.

Stores step images: files uploaded by the operator and illustrations
returned by the image model as data URIs. Every image goes through the
same security validation before it is written to IMAGE_UPLOAD_DIR, and
the reference stored on a step is the public URL.
"""

import logging
import uuid
from pathlib import Path

from fastapi import HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError

from database.connection import get_async_session
from database.models import UploadedImage
from shared.config import get_settings
from shared.errors import PersistenceError, SuggestionServiceError
from shared.image_security import (
    ImageSecurityError,
    decode_data_uri,
    get_extension_for_mime,
    sanitize_filename,
    validate_image_full,
)

logger = logging.getLogger(__name__)


class ImageService:
    """Service for storing step images."""

    def __init__(self, upload_dir: str | Path | None = None):
        settings = get_settings()
        self.upload_dir = Path(upload_dir or settings.IMAGE_UPLOAD_DIR)
        self.base_url = settings.IMAGE_BASE_URL
        self.max_size = settings.IMAGE_MAX_SIZE_MB * 1024 * 1024  # Convert to bytes

        # Ensure upload directory exists
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def _store(
        self,
        content: bytes,
        mime_type: str,
        original_filename: str,
        width: int,
        height: int,
        source: str,
    ) -> dict:
        ext = get_extension_for_mime(mime_type)
        stored_filename = f"{uuid.uuid4()}.{ext}"
        file_path = self.upload_dir / stored_filename

        with open(file_path, "wb") as f:
            f.write(content)

        try:
            async with get_async_session() as session:
                image = UploadedImage(
                    filename=original_filename,
                    stored_filename=stored_filename,
                    mime_type=mime_type,
                    file_size=len(content),
                    width=width,
                    height=height,
                    source=source,
                )
                session.add(image)
                await session.commit()
                await session.refresh(image)
        except SQLAlchemyError as e:
            file_path.unlink(missing_ok=True)
            raise PersistenceError("No se pudo registrar la imagen.") from e

        logger.info(
            f"Image stored: {stored_filename} ({width}x{height}, {len(content)} bytes, {mime_type}, {source})"
        )

        return {
            "id": str(image.id),
            "url": f"{self.base_url}/{stored_filename}",
            "filename": original_filename,
            "stored_filename": stored_filename,
            "mime_type": mime_type,
            "file_size": len(content),
            "width": width,
            "height": height,
            "source": source,
            "created_at": image.created_at.isoformat(),
        }

    async def upload_image(self, file: UploadFile) -> dict:
        """
        Validate and store an image uploaded for a protocol step.

        Args:
            file: FastAPI UploadFile

        Returns:
            Dict with image metadata and URL
        """
        content = await file.read()

        # Check file size first (before expensive validation)
        if len(content) > self.max_size:
            raise HTTPException(
                status_code=400,
                detail=f"Archivo demasiado grande. Maximo: {self.max_size // 1024 // 1024}MB",
            )

        try:
            validation_result = validate_image_full(
                content=content,
                declared_mime=file.content_type or "application/octet-stream",
            )
        except ImageSecurityError as e:
            logger.warning(f"Image validation failed: {e}")
            raise HTTPException(status_code=400, detail=f"Imagen invalida: {str(e)}")

        return await self._store(
            content,
            validation_result["detected_mime"],
            sanitize_filename(file.filename or "image"),
            validation_result["width"],
            validation_result["height"],
            source="upload",
        )

    async def store_data_uri(self, data_uri: str, *, source: str = "generated") -> str:
        """
        Store an image returned by the image model and return its public URL.

        Raises:
            SuggestionServiceError: If the returned image is not a valid image
        """
        try:
            content, declared_mime = decode_data_uri(data_uri)
            if len(content) > self.max_size:
                raise ImageSecurityError("Generated image exceeds the maximum size")
            validation_result = validate_image_full(content, declared_mime)
        except ImageSecurityError as e:
            logger.warning(f"Generated image rejected: {e}")
            raise SuggestionServiceError(
                "La imagen generada no es válida.",
                context={"error": str(e)},
            ) from e

        result = await self._store(
            content,
            validation_result["detected_mime"],
            "generated-step-image",
            validation_result["width"],
            validation_result["height"],
            source=source,
        )
        return result["url"]


# Singleton
_image_service: ImageService | None = None


def get_image_service() -> ImageService:
    """Get singleton image service instance."""
    global _image_service
    if _image_service is None:
        _image_service = ImageService()
    return _image_service
