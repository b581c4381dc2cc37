"""
Guardian Shield - Image Security Validation.

Validation for step images, whether uploaded by an operator or returned
by the image model as a base64 data URI.
Protects against:
- Fake images (arbitrary files with an image extension)
- Image bombs (decompression attacks)
- Unsafe filenames
"""

import base64
import binascii
import logging
import re
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Magic number signatures for allowed image types
MAGIC_SIGNATURES = {
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/png": [b"\x89\x50\x4e\x47\x0d\x0a\x1a\x0a"],
    "image/gif": [
        b"\x47\x49\x46\x38\x37\x61",  # GIF87a
        b"\x47\x49\x46\x38\x39\x61",  # GIF89a
    ],
    "image/webp": [b"\x52\x49\x46\x46"],  # RIFF, confirmed by "WEBP" at offset 8
}

ALLOWED_MIME_TYPES = set(MAGIC_SIGNATURES)
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

PIL_FORMAT_TO_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

# Security limits
MAX_IMAGE_PIXELS = 89_478_485  # PIL default: ~89MP
MIN_IMAGE_SIZE = 100  # bytes (too small = suspicious)
MAX_IMAGE_DIMENSION = 8192

_DATA_URI_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<payload>.+)$", re.DOTALL)


class ImageSecurityError(Exception):
    """Exception raised for image security validation failures."""


def detect_mime_from_magic(content: bytes) -> str | None:
    """
    Detect MIME type from file magic numbers.

    Returns:
        Detected MIME type or None if not recognized
    """
    if len(content) < 8:
        return None

    for mime_type, signatures in MAGIC_SIGNATURES.items():
        for sig in signatures:
            if content[: len(sig)] != sig:
                continue
            if mime_type == "image/webp" and content[8:12] != b"WEBP":
                continue
            return mime_type

    return None


def validate_magic_number(content: bytes, declared_mime: str | None = None) -> str:
    """
    Validate file content using magic numbers (file signature).

    Returns:
        Actual MIME type detected

    Raises:
        ImageSecurityError: If file type is not recognized or not allowed
    """
    if len(content) < MIN_IMAGE_SIZE:
        raise ImageSecurityError(f"File too small: {len(content)} bytes")

    detected_mime = detect_mime_from_magic(content)
    if detected_mime is None:
        raise ImageSecurityError(
            "Could not detect file type. File may not be a valid image."
        )

    if detected_mime not in ALLOWED_MIME_TYPES:
        raise ImageSecurityError(f"File type not allowed: {detected_mime}")

    if declared_mime and declared_mime.replace("jpg", "jpeg") != detected_mime:
        logger.warning(
            f"MIME type mismatch: declared={declared_mime}, "
            f"detected={detected_mime}. Using detected type."
        )

    return detected_mime


def validate_image_content(content: bytes) -> tuple[int, int]:
    """
    Validate image content using PIL (checks if valid image + dimensions).

    Returns:
        Tuple of (width, height)

    Raises:
        ImageSecurityError: If image is invalid or dimensions exceed limits
    """
    Image.MAX_IMAGE_PIXELS = MAX_IMAGE_PIXELS

    try:
        img = Image.open(BytesIO(content))
        img.verify()

        # verify() invalidates the image object
        img = Image.open(BytesIO(content))
        width, height = img.size
    except Image.DecompressionBombError as e:
        logger.warning(f"Decompression bomb detected: {e}")
        raise ImageSecurityError("Image appears to be a decompression bomb") from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Image validation failed: {e}")
        raise ImageSecurityError(f"Invalid image file: {e}") from e

    if width <= 0 or height <= 0:
        raise ImageSecurityError(f"Invalid image dimensions: {width}x{height}")

    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise ImageSecurityError(
            f"Image dimensions too large: {width}x{height}. "
            f"Max: {MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION}"
        )

    logger.debug(f"Image validated: {width}x{height} pixels, {len(content)} bytes")
    return width, height


def decode_data_uri(data_uri: str) -> tuple[bytes, str]:
    """
    Decode a ``data:image/...;base64,`` URI as returned by the image model.

    Returns:
        Tuple of (raw bytes, declared MIME type)

    Raises:
        ImageSecurityError: If the URI is malformed
    """
    match = _DATA_URI_RE.match(data_uri.strip())
    if not match:
        raise ImageSecurityError("Not a base64 image data URI")

    try:
        content = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageSecurityError(f"Invalid base64 payload: {e}") from e

    return content, match.group("mime")


def validate_filename(filename: str) -> str:
    """
    Validate a stored filename requested from the public image route.

    Raises:
        ImageSecurityError: If the name has directory parts, unsafe
            characters, is hidden, or has a non-image extension
    """
    if not filename:
        raise ImageSecurityError("Filename cannot be empty")

    if ".." in filename or "/" in filename or "\\" in filename:
        logger.warning(f"Path traversal attempt detected: {filename}")
        raise ImageSecurityError("Path components are not allowed")

    if not re.match(r"^[\w\-\.]+$", filename):
        raise ImageSecurityError(f"Invalid filename: {filename}")

    if filename.startswith("."):
        raise ImageSecurityError("Hidden files not allowed")

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise ImageSecurityError(f"Invalid file extension: {ext}")

    return filename


def sanitize_filename(original: str) -> str:
    """Sanitize a filename for safe storage (basename, safe chars, max 255)."""
    if not original:
        return "image"

    safe = Path(original).name
    safe = re.sub(r"[^\w\-\.]", "_", safe)
    safe = safe.lstrip(".")

    if not safe:
        return "image"

    if len(safe) > 255:
        if "." in safe:
            name_part, ext = safe.rsplit(".", 1)
            safe = name_part[: 255 - len(ext) - 1] + "." + ext
        else:
            safe = safe[:255]

    return safe


def validate_image_full(content: bytes, declared_mime: str | None = None) -> dict:
    """
    Perform full validation on an image.

    Returns:
        Dict with validation results:
        {
            "valid": True,
            "detected_mime": str,
            "width": int,
            "height": int,
            "file_size": int
        }

    Raises:
        ImageSecurityError: If any validation fails
    """
    detected_mime = validate_magic_number(content, declared_mime)
    width, height = validate_image_content(content)

    logger.info(
        f"Image security validation passed: "
        f"{width}x{height}, {len(content)} bytes, {detected_mime}"
    )

    return {
        "valid": True,
        "detected_mime": detected_mime,
        "width": width,
        "height": height,
        "file_size": len(content),
    }


def get_extension_for_mime(mime_type: str) -> str:
    """Get file extension (without dot) for a MIME type."""
    mime_to_ext = {
        "image/jpeg": "jpg",
        "image/png": "png",
        "image/gif": "gif",
        "image/webp": "webp",
    }
    return mime_to_ext.get(mime_type, "jpg")
