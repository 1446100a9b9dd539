"""
Checks and transforms applied to submission images before they are stored.
"""

from __future__ import annotations

import io
import os
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

ALLOWED_TYPES = re.compile(r"jpeg|jpg|png|gif|webp")
INVALID_TYPE_MESSAGE = "Only image files (JPG, PNG, GIF, WebP) are allowed!"
CROP_CONTENT_TYPE = "image/jpeg"
CROP_EXTENSION = ".jpg"


class ImageValidationError(ValueError):
    """Raised when an upload is not an acceptable image."""


class ImageTooLargeError(ImageValidationError):
    """Raised when Pillow refuses to open an image with too many pixels."""


@dataclass
class CropBox:
    """Pixel area of the source image to keep."""

    x: int
    y: int
    width: int
    height: int


def file_extension(filename: str | None) -> str:
    return os.path.splitext(filename or "")[1].lower()


def is_allowed_image(filename: str | None, content_type: str | None) -> bool:
    """Both the extension and the declared content type must name an image type."""
    return bool(ALLOWED_TYPES.search(file_extension(filename))) and bool(
        ALLOWED_TYPES.search((content_type or "").lower())
    )


def check_upload(
    filename: str | None, content_type: str | None, size: int, max_bytes: int
) -> None:
    if not is_allowed_image(filename, content_type):
        raise ImageValidationError(INVALID_TYPE_MESSAGE)
    if size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise ImageValidationError(f"File too large. Maximum size is {limit_mb}MB.")


def read_dimensions(data: bytes) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.width, img.height
    except Image.DecompressionBombError as exc:
        raise ImageTooLargeError(str(exc)) from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageValidationError("Invalid image file") from exc


def check_dimensions(data: bytes, max_width: int, max_height: int) -> tuple[int, int]:
    too_large = (
        f"Image dimensions too large. Maximum allowed: {max_width}x{max_height}px."
    )
    try:
        width, height = read_dimensions(data)
    except ImageTooLargeError as exc:
        raise ImageValidationError(too_large) from exc
    if width > max_width or height > max_height:
        raise ImageValidationError(f"{too_large} Your image: {width}x{height}px")
    return width, height


def crop_square(data: bytes, box: CropBox, size: int = 1000, quality: int = 95) -> bytes:
    """
    Cut ``box`` out of the image, scale it to a ``size`` x ``size`` square and
    return it JPEG-encoded. This matches what the browser crop dialog uploads.
    """
    if box.width <= 0 or box.height <= 0:
        raise ImageValidationError("Crop area must have a positive width and height")
    try:
        with Image.open(io.BytesIO(data)) as img:
            if (
                box.x < 0
                or box.y < 0
                or box.x + box.width > img.width
                or box.y + box.height > img.height
            ):
                raise ImageValidationError("Crop area is outside the image")
            region = (
                img.convert("RGB")
                .crop((box.x, box.y, box.x + box.width, box.y + box.height))
                .resize((size, size), Image.Resampling.LANCZOS)
            )
    except Image.DecompressionBombError as exc:
        raise ImageTooLargeError(str(exc)) from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageValidationError("Invalid image file") from exc

    buffer = io.BytesIO()
    region.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
