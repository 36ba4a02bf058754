"""
Upload validation for fitting slots.

Type and size checks are synchronous and pure; decodability is checked
separately because it needs the image to actually be parsed.
"""
import asyncio
import io
import logging
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError

from bogofit.core.config import settings
from bogofit.schemas.virtual_fitting import UploadedImage

logger = logging.getLogger(__name__)

UNSUPPORTED_TYPE_MESSAGE = "Unsupported file type. Only JPG, PNG and WEBP files can be uploaded."
EMPTY_FILE_MESSAGE = "The selected file is empty."
UNDECODABLE_MESSAGE = "The image file is corrupted or invalid. Please choose another image."


def validate_file(
    image: UploadedImage,
    max_size_bytes: Optional[int] = None,
    allowed_types: Optional[Iterable[str]] = None,
) -> str:
    """
    Check an image against the MIME allow-list and an optional size limit.

    Args:
        image: Candidate image
        max_size_bytes: Maximum accepted size, or None for no limit
        allowed_types: MIME allow-list, defaults to the configured one

    Returns:
        Empty string when valid, otherwise the rejection reason
    """
    allowed = tuple(allowed_types) if allowed_types is not None else settings.ALLOWED_MIME_TYPES
    content_type = (image.content_type or "").split(";")[0].strip().lower()
    if content_type not in allowed:
        return UNSUPPORTED_TYPE_MESSAGE

    if image.size == 0:
        return EMPTY_FILE_MESSAGE

    if max_size_bytes is not None and image.size > max_size_bytes:
        limit_mb = max_size_bytes / (1024 * 1024)
        return f"File is too large. Maximum size is {limit_mb:g}MB."

    return ""


def _verify_image(data: bytes) -> None:
    with Image.open(io.BytesIO(data)) as img:
        img.verify()


async def check_decodable(data: bytes) -> str:
    """Return an empty string if the bytes decode as an image, else the reason."""
    try:
        await asyncio.to_thread(_verify_image, data)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.info(f"[check_decodable] Rejected image ({len(data)} bytes): {e}")
        return UNDECODABLE_MESSAGE
    return ""
