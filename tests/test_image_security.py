"""
Tests for image security validation module.

Tests cover:
- Path traversal prevention for the public image route
- Magic number validation
- Image content validation
- Data URIs returned by the image model
- Filename sanitization
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from shared.image_security import (
    ImageSecurityError,
    decode_data_uri,
    detect_mime_from_magic,
    get_extension_for_mime,
    sanitize_filename,
    validate_filename,
    validate_image_content,
    validate_image_full,
    validate_magic_number,
)


def _jpeg_bytes(size=(64, 48)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color="red").save(buffer, format="JPEG")
    return buffer.getvalue()


def _png_bytes() -> bytes:
    buffer = BytesIO()
    Image.linear_gradient("L").save(buffer, format="PNG")
    return buffer.getvalue()


# =============================================================================
# Path Traversal Tests
# =============================================================================


class TestValidateFilename:
    """Tests for validate_filename function."""

    def test_valid_filename(self):
        assert validate_filename("4f1c2a.png") == "4f1c2a.png"
        assert validate_filename("step-image_01.webp") == "step-image_01.webp"

    def test_path_traversal_blocked(self):
        with pytest.raises(ImageSecurityError):
            validate_filename("../../../etc/passwd")

        with pytest.raises(ImageSecurityError):
            validate_filename("..\\..\\secret.jpg")

    def test_hidden_files_blocked(self):
        with pytest.raises(ImageSecurityError):
            validate_filename(".env")

    def test_invalid_extension(self):
        with pytest.raises(ImageSecurityError):
            validate_filename("script.php")

    def test_empty_filename(self):
        with pytest.raises(ImageSecurityError):
            validate_filename("")

    def test_special_characters_blocked(self):
        with pytest.raises(ImageSecurityError):
            validate_filename("photo|command.png")


# =============================================================================
# Magic Number Validation Tests
# =============================================================================


class TestValidateMagicNumber:
    """Tests for validate_magic_number function."""

    def test_valid_jpeg(self):
        assert validate_magic_number(_jpeg_bytes(), "image/jpeg") == "image/jpeg"

    def test_valid_png(self):
        assert validate_magic_number(_png_bytes(), "image/png") == "image/png"

    def test_detected_type_wins_over_declared(self):
        """A PNG declared as JPEG is accepted as PNG."""
        assert validate_magic_number(_png_bytes(), "image/jpeg") == "image/png"

    def test_fake_image_blocked(self):
        fake_content = b"<?php system($_GET['cmd']); ?>" * 5

        with pytest.raises(ImageSecurityError):
            validate_magic_number(fake_content, "image/jpeg")

    def test_too_small_blocked(self):
        with pytest.raises(ImageSecurityError):
            validate_magic_number(b"\xff\xd8\xff" + b"\x00" * 10)

    def test_riff_without_webp_marker_not_detected(self):
        content = b"RIFF" + b"\x00" * 4 + b"WAVE" + b"\x00" * 100
        assert detect_mime_from_magic(content) is None


# =============================================================================
# Content Validation Tests
# =============================================================================


class TestValidateImageContent:
    def test_dimensions_returned(self):
        assert validate_image_content(_jpeg_bytes((64, 48))) == (64, 48)

    def test_truncated_image_rejected(self):
        content = _png_bytes()
        with pytest.raises(ImageSecurityError):
            validate_image_content(content[: len(content) // 2])

    def test_full_validation_result(self):
        result = validate_image_full(_jpeg_bytes(), "image/jpeg")

        assert result["valid"] is True
        assert result["detected_mime"] == "image/jpeg"
        assert (result["width"], result["height"]) == (64, 48)


# =============================================================================
# Data URI Tests
# =============================================================================


class TestDecodeDataUri:
    def test_decode_png_data_uri(self):
        content = _png_bytes()
        data_uri = "data:image/png;base64," + base64.b64encode(content).decode()

        decoded, mime = decode_data_uri(data_uri)

        assert decoded == content
        assert mime == "image/png"

    def test_not_a_data_uri(self):
        with pytest.raises(ImageSecurityError):
            decode_data_uri("https://example.com/image.png")

    def test_invalid_base64(self):
        with pytest.raises(ImageSecurityError):
            decode_data_uri("data:image/png;base64,@@not-base64@@")


# =============================================================================
# Filename Sanitization Tests
# =============================================================================


class TestSanitizeFilename:
    def test_directory_parts_removed(self):
        assert sanitize_filename("../../foto paso 1.jpg") == "foto_paso_1.jpg"

    def test_empty_falls_back(self):
        assert sanitize_filename("") == "image"

    def test_long_name_keeps_extension(self):
        result = sanitize_filename("a" * 300 + ".png")
        assert len(result) == 255
        assert result.endswith(".png")

    def test_extension_for_mime(self):
        assert get_extension_for_mime("image/webp") == "webp"
        assert get_extension_for_mime("application/unknown") == "jpg"
