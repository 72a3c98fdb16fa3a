from __future__ import annotations

import logging
from typing import List, Protocol, Sequence

from . import models

log = logging.getLogger(__name__)


class Rect(Protocol):
    left: float
    top: float
    width: float
    height: float


def rectangles_overlap(a: Rect, b: Rect) -> bool:
    """Axis-aligned overlap test; shared edges do not count."""
    return not (
        a.left + a.width <= b.left
        or b.left + b.width <= a.left
        or a.top + a.height <= b.top
        or b.top + b.height <= a.top
    )


def filter_overlapping_words(
    words: Sequence[models.Word],
    codes: Sequence[models.Code],
) -> List[models.Word]:
    """
    Drop words that intersect a detected code. Tesseract tends to read the
    module pattern of a barcode or QR code as garbage text; the decoder owns
    that region.
    """
    if not codes:
        return list(words)
    kept = [word for word in words if not any(rectangles_overlap(word, code) for code in codes)]
    removed = len(words) - len(kept)
    if removed:
        log.debug("Filtered out %d words overlapping %d codes", removed, len(codes))
    return kept
