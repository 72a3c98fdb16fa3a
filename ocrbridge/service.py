from __future__ import annotations

import asyncio
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

import anyio

from . import ingestion, models
from .barcodes import ZbarCodeReader
from .config import Settings
from .delivery import ChannelRegistry, PushChannel, WebhookNotifier
from .errors import BusyError, NotFoundError
from .normalizer import parse_tsv_output
from .overlap import filter_overlapping_words
from .recognition import TesseractRecognizer
from .scratch import ScratchSpace
from .storage import Job, JobStore

log = logging.getLogger(__name__)


class Recognizer(Protocol):
    async def recognize(self, path: Path) -> List[str]:
        ...


class CodeReader(Protocol):
    async def detect(self, path: Path) -> List[models.Code]:
        ...


class JobOrchestrator:
    """
    Admits one recognition job at a time, runs both engines on it in the
    background and surfaces the outcome through the job's delivery strategy.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        code_reader: CodeReader,
        notifier: WebhookNotifier,
        scratch: ScratchSpace,
        max_image_bytes: int = ingestion.MAX_SIZE_BYTES,
        retention_seconds: Optional[float] = None,
    ) -> None:
        self.recognizer = recognizer
        self.code_reader = code_reader
        self.notifier = notifier
        self.scratch = scratch
        self.max_image_bytes = max_image_bytes
        self.retention_seconds = retention_seconds
        self.jobs = JobStore()
        self.channels = ChannelRegistry()
        self._busy = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobOrchestrator":
        return cls(
            recognizer=TesseractRecognizer.from_settings(settings),
            code_reader=ZbarCodeReader(),
            notifier=WebhookNotifier.from_settings(settings),
            scratch=ScratchSpace(settings.TEMP_DIR),
            max_image_bytes=settings.MAX_IMAGE_BYTES,
            retention_seconds=settings.JOB_RETENTION_SECONDS,
        )

    def is_processing(self) -> bool:
        return self._busy.locked()

    async def submit(self, image: bytes, options: models.SubmitOptions) -> str:
        suffix = ingestion.validate_image(image, self.max_image_bytes)
        if not self._busy.acquire(blocking=False):
            raise BusyError("OCR service is busy processing another request")
        try:
            self._evict_expired()
            job = Job(strategy=options.strategy)
            if isinstance(options, models.WebhookOptions):
                job.webhook_target = str(options.webhook_target)
                job.callback_headers = dict(options.callback_headers)
            self.jobs.create(job)
            if job.strategy == "push":
                self.channels.open(job.id)
            task = asyncio.create_task(self._process(job.id, image, suffix))
        except BaseException:
            self._busy.release()
            raise
        self._track(task)
        log.debug("OCR job created: %s with strategy: %s", job.id, job.strategy)
        return job.id

    def get_status(self, job_id: str) -> Job:
        return self.jobs.get(job_id)

    def get_progress_channel(self, job_id: str) -> PushChannel:
        job = self.jobs.get(job_id)
        if job.strategy != "push":
            raise NotFoundError(f"Job {job_id} has no progress channel ({job.strategy} strategy)")
        return self.channels.get(job_id)

    async def join(self) -> None:
        """Wait for every running job and outstanding delivery."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def debug_info(self) -> Dict[str, Any]:
        engine_info = getattr(self.recognizer, "engine_info", None)
        return {
            "tempDirectory": self.scratch.debug_info(),
            "process": {
                "uid": os.getuid() if hasattr(os, "getuid") else "not available",
                "gid": os.getgid() if hasattr(os, "getgid") else "not available",
                "cwd": os.getcwd(),
            },
            "tesseract": engine_info() if engine_info else None,
            "processing": self.is_processing(),
            "jobs": len(self.jobs),
        }

    # ---- Background work ----
    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _evict_expired(self) -> None:
        if self.retention_seconds is None:
            return
        for job_id in self.jobs.prune(self.retention_seconds):
            self.channels.discard(job_id)
            log.debug("Evicted expired job %s", job_id)

    async def _process(self, job_id: str, image: bytes, suffix: str) -> None:
        path: Optional[Path] = None
        job: Optional[Job] = None
        try:
            path = self.scratch.path_for(job_id, suffix)
            await anyio.to_thread.run_sync(self.scratch.write, job_id, image, suffix)
            result = await self._run_engines(job_id, path)
            job = self.jobs.complete(job_id, result)
        except asyncio.CancelledError:
            log.warning("OCR job cancelled: %s", job_id)
            job = self.jobs.fail(job_id, "OCR processing was cancelled")
            raise
        except Exception as exc:
            log.error("OCR job failed: %s", job_id, exc_info=True)
            job = self.jobs.fail(job_id, str(exc) or "OCR processing failed")
        finally:
            self._busy.release()
            if job is not None:
                self._dispatch(job)
            if path is not None:
                self.scratch.remove(path)

    async def _run_engines(self, job_id: str, path: Path) -> models.OcrResult:
        text_output, code_output = await asyncio.gather(
            self.recognizer.recognize(path),
            self.code_reader.detect(path),
            return_exceptions=True,
        )
        if isinstance(code_output, BaseException):
            log.warning("Code detection failed for job %s: %s", job_id, code_output)
            codes: List[models.Code] = []
        else:
            codes = code_output
        if isinstance(text_output, BaseException):
            raise text_output

        words = parse_tsv_output(text_output)
        kept = filter_overlapping_words(words, codes)
        log.debug(
            "OCR job done: %s (%d/%d words, %d codes)", job_id, len(kept), len(words), len(codes)
        )
        return models.OcrResult(words=kept, codes=codes)

    # ---- Delivery ----
    def _dispatch(self, job: Job) -> None:
        if job.strategy == "push":
            self._push(job)
        elif job.strategy == "webhook":
            self._track(asyncio.create_task(self._send_webhook(job)))
        else:
            log.debug("Job %s %s, available for polling", job.id, job.status.value)

    def _push(self, job: Job) -> None:
        try:
            channel = self.channels.get(job.id)
        except NotFoundError:
            log.warning("No progress channel registered for job %s", job.id)
            return
        if job.status == models.JobState.COMPLETED:
            event = models.ProgressEvent(type="complete", result=job.result)
        else:
            event = models.ProgressEvent(type="error", error=job.error)
        channel.publish(event)

    async def _send_webhook(self, job: Job) -> None:
        if not job.webhook_target:
            log.warning("Webhook job %s has no target", job.id)
            return
        payload = models.WebhookPayload(
            job_id=job.id,
            status=job.status.value,
            result=job.result,
            error=job.error,
            timestamp=datetime.now(timezone.utc),
        )
        await self.notifier.notify(job.webhook_target, payload, job.callback_headers)
