from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Sequence, Tuple

import anyio
from PIL import Image

from . import models
from .errors import EngineInvocationError

try:
    from pyzbar import pyzbar
except Exception:  # pragma: no cover - libzbar not installed
    pyzbar = None

log = logging.getLogger(__name__)

BAR_CODE_SYMBOLOGIES = {
    "EAN2",
    "EAN5",
    "EAN8",
    "EAN13",
    "UPCA",
    "UPCE",
    "ISBN10",
    "ISBN13",
    "I25",
    "CODABAR",
    "CODE39",
    "CODE93",
    "CODE128",
    "DATABAR",
    "DATABAR_EXP",
}


def code_type(symbology: str) -> models.CodeType:
    if symbology == "QRCODE":
        return models.CodeType.QR_CODE
    if symbology in BAR_CODE_SYMBOLOGIES:
        return models.CodeType.BAR_CODE
    return models.CodeType.OTHER


def _bounds(symbol: Any) -> Tuple[float, float, float, float]:
    points: Sequence[Any] = getattr(symbol, "polygon", None) or []
    if not points:
        rect = symbol.rect
        return rect.left, rect.top, rect.width, rect.height
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys)


def to_codes(symbols: Iterable[Any], width: int, height: int) -> List[models.Code]:
    """
    Map decoded symbols to codes. Boxes are normalized by the image size;
    without a usable size they stay in pixels.
    """
    codes = []
    scale_x = 1 / width if width > 0 else 1
    scale_y = 1 / height if height > 0 else 1
    for symbol in symbols:
        left, top, w, h = _bounds(symbol)
        codes.append(
            models.Code(
                id=models.short_id(),
                content=symbol.data.decode("utf-8", errors="replace"),
                type=code_type(symbol.type),
                left=left * scale_x,
                top=top * scale_y,
                width=w * scale_x,
                height=h * scale_y,
            )
        )
    return codes


class ZbarCodeReader:
    """Finds barcodes and QR codes with ZBar."""

    def _decode(self, image: Any) -> List[Any]:
        if pyzbar is None:
            raise EngineInvocationError("ZBar library is not available")
        try:
            return pyzbar.decode(image)
        except Exception as exc:
            raise EngineInvocationError(f"ZBar scan failed: {exc}") from exc

    def scan_file(self, path: Path) -> List[models.Code]:
        try:
            with Image.open(path) as img:
                img.load()
                width, height = img.size
                symbols = self._decode(img)
        except OSError as exc:
            raise EngineInvocationError(f"ZBar scan failed: {exc}") from exc
        log.debug("ZBar scan completed: found %d symbols", len(symbols))
        return to_codes(symbols, width, height)

    def scan_pixels(self, pixels: bytes, width: int, height: int) -> List[models.Code]:
        """Scan an 8-bit grayscale buffer of width*height bytes."""
        if width <= 0 or height <= 0 or len(pixels) != width * height:
            raise EngineInvocationError(
                f"Pixel buffer of {len(pixels)} bytes does not match {width}x{height}"
            )
        symbols = self._decode((pixels, width, height))
        log.debug("ZBar scan completed: found %d symbols", len(symbols))
        return to_codes(symbols, width, height)

    async def detect(self, path: Path) -> List[models.Code]:
        return await anyio.to_thread.run_sync(self.scan_file, path)
