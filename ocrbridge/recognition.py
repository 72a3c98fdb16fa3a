from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import anyio
import pytesseract

from .config import Settings
from .errors import EngineInvocationError

log = logging.getLogger(__name__)


class TesseractRecognizer:
    """
    Runs the Tesseract CLI in TSV mode against an image on disk and hands
    back the raw output lines, header included.
    """

    def __init__(self, lang: str = "deu+eng", config: str = "", tesseract_cmd: Optional[str] = None) -> None:
        self.lang = lang
        self.config = config
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @classmethod
    def from_settings(cls, settings: Settings) -> "TesseractRecognizer":
        return cls(
            lang=settings.TESSERACT_LANG,
            config=settings.TESSERACT_CONFIG,
            tesseract_cmd=settings.TESSERACT_CMD,
        )

    def _run(self, path: Path) -> str:
        log.debug("Running Tesseract on %s (lang=%s config=%r)", path, self.lang, self.config)
        try:
            return pytesseract.image_to_data(
                str(path),
                lang=self.lang,
                config=self.config,
                output_type=pytesseract.Output.STRING,
            )
        except pytesseract.TesseractError as exc:
            raise EngineInvocationError(
                f"Tesseract failed with exit code {exc.status}: {exc.message}"
            ) from exc
        except (OSError, RuntimeError) as exc:
            raise EngineInvocationError(f"Failed to start Tesseract process: {exc}") from exc

    async def recognize(self, path: Path) -> List[str]:
        output = await anyio.to_thread.run_sync(self._run, path)
        lines = [line for line in output.splitlines() if line.strip()]
        if len(lines) < 2:
            log.warning("Tesseract produced no rows for %s; no text detected", path)
            return []
        log.debug("Tesseract produced %d TSV lines", len(lines))
        return lines

    def engine_info(self) -> Dict[str, Any]:
        try:
            version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractError, OSError, RuntimeError) as exc:
            version = f"Error getting version: {exc}"
        try:
            languages = pytesseract.get_languages(config="")
        except (pytesseract.TesseractError, OSError, RuntimeError) as exc:
            languages = [f"Error getting languages: {exc}"]
        return {"version": version, "availableLanguages": languages}
