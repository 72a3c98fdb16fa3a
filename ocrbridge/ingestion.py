from __future__ import annotations

import io
from typing import Optional

from PIL import Image

from .errors import InvalidInputError

MAX_SIZE_BYTES = 10 * 1024 * 1024  # 10MB upload cap


def validate_content_type(content_type: Optional[str]) -> None:
    if not content_type or not content_type.lower().startswith("image/"):
        raise InvalidInputError("File must be an image")


def validate_image(content: Optional[bytes], max_size_bytes: int = MAX_SIZE_BYTES) -> str:
    """
    Reject empty, oversized or non-image payloads. Returns the file suffix
    matching the detected image format.
    """
    if not content:
        raise InvalidInputError("No image provided")
    if len(content) > max_size_bytes:
        raise InvalidInputError(f"File size must be less than {max_size_bytes // (1024 * 1024)}MB")
    try:
        with Image.open(io.BytesIO(content)) as img:
            image_format = img.format
            img.verify()
    except Exception as exc:
        raise InvalidInputError("Payload is not a recognizable image") from exc
    return f".{image_format.lower()}" if image_format else ".png"
