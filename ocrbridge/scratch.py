from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .errors import TempStorageError

log = logging.getLogger(__name__)

FALLBACK_DIRS = ("/tmp/ocr-temp", "/var/tmp/tesseract-api")
WRITE_PROBE = "test-write-permissions"


def _probe(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    probe = directory / WRITE_PROBE
    probe.write_text("test")
    probe.unlink()


class ScratchSpace:
    """
    Directory holding the per-job input files handed to the engines.
    Falls back to other writable locations if the configured one is not.
    """

    def __init__(self, preferred: str, fallbacks: Optional[Iterable[str]] = None) -> None:
        self.preferred = Path(preferred)
        if fallbacks is None:
            fallbacks = (*FALLBACK_DIRS, tempfile.gettempdir())
        self.fallbacks = [Path(p) for p in fallbacks]
        self._directory: Optional[Path] = None

    @property
    def directory(self) -> Path:
        if self._directory is None:
            self._directory = self._resolve()
        return self._directory

    def _resolve(self) -> Path:
        try:
            _probe(self.preferred)
            log.debug("Temp directory ready: %s", self.preferred)
            return self.preferred
        except OSError as exc:
            log.error("Failed to set up temp directory %s: %s", self.preferred, exc)
            last_error: OSError = exc

        for candidate in self.fallbacks:
            try:
                _probe(candidate)
            except OSError as exc:
                log.debug("Alternative temp directory %s also failed: %s", candidate, exc)
                last_error = exc
                continue
            log.warning("Using alternative temp directory: %s", candidate)
            return candidate

        raise TempStorageError(f"No writable temp directory found. Last error: {last_error}")

    def path_for(self, job_id: str, suffix: str = ".png") -> Path:
        return self.directory / f"input_{job_id}{suffix}"

    def write(self, job_id: str, content: bytes, suffix: str = ".png") -> Path:
        path = self.path_for(job_id, suffix)
        try:
            path.write_bytes(content)
        except OSError as exc:
            raise TempStorageError(f"Cannot write to temp directory: {exc}") from exc
        log.debug("Created input file: %s (%d bytes)", path, len(content))
        return path

    @staticmethod
    def remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            log.warning("Failed to clean up input file %s: %s", path, exc)
            return
        log.debug("Cleaned up input file: %s", path)

    def debug_info(self) -> Dict[str, Any]:
        directory = self._directory or self.preferred
        info: Dict[str, Any] = {"path": str(directory), "exists": directory.exists()}
        if not info["exists"]:
            return info
        try:
            stats = directory.stat()
            info["contents"] = sorted(os.listdir(directory))
            info["permissions"] = oct(stats.st_mode & 0o777)
            info["owner"] = {"uid": stats.st_uid, "gid": stats.st_gid}
        except OSError as exc:
            info["contents"] = [f"Error reading directory: {exc}"]
        try:
            _probe(directory)
            info["writeTest"] = "success"
        except OSError as exc:
            info["writeTest"] = f"failed: {exc}"
        return info
