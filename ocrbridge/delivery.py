from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Dict, Mapping, Optional

import anyio
import httpx

from . import models
from .config import Settings
from .errors import DeliveryError, NotFoundError

log = logging.getLogger(__name__)


class PushChannel:
    """
    One-shot event channel for a push-strategy job. Resolves exactly once
    with the terminal event; every subscriber receives that event and the
    stream ends.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._terminal: asyncio.Future[models.ProgressEvent] = asyncio.get_running_loop().create_future()

    @property
    def closed(self) -> bool:
        return self._terminal.done()

    def publish(self, event: models.ProgressEvent) -> None:
        if event.type == "progress":
            raise ValueError("Push channels only carry terminal events")
        if self._terminal.done():
            raise RuntimeError(f"Channel for job {self.job_id} is already closed")
        self._terminal.set_result(event)

    async def events(self) -> AsyncIterator[models.ProgressEvent]:
        yield await asyncio.shield(self._terminal)


class ChannelRegistry:
    def __init__(self) -> None:
        self._channels: Dict[str, PushChannel] = {}
        self._lock = threading.Lock()

    def open(self, job_id: str) -> PushChannel:
        channel = PushChannel(job_id)
        with self._lock:
            self._channels[job_id] = channel
        return channel

    def get(self, job_id: str) -> PushChannel:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            raise NotFoundError(f"Job {job_id} not found")
        return channel

    def discard(self, job_id: str) -> None:
        with self._lock:
            self._channels.pop(job_id, None)


class WebhookNotifier:
    """Posts terminal job state to a caller-supplied URL."""

    def __init__(
        self,
        timeout_seconds: float = 3.0,
        max_attempts: int = 1,
        backoff_seconds: float = 0.5,
        append_job_id: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.append_job_id = append_job_id
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookNotifier":
        return cls(
            timeout_seconds=settings.WEBHOOK_TIMEOUT_SECONDS,
            max_attempts=settings.WEBHOOK_MAX_ATTEMPTS,
            backoff_seconds=settings.WEBHOOK_BACKOFF_SECONDS,
            append_job_id=settings.WEBHOOK_APPEND_JOB_ID,
        )

    def target_url(self, target: str, job_id: str) -> str:
        if self.append_job_id:
            return f"{target.rstrip('/')}/{job_id}"
        return target

    async def notify(
        self,
        target: str,
        payload: models.WebhookPayload,
        headers: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """Deliver the payload; failures are logged and reported as False."""
        url = self.target_url(target, payload.job_id)
        try:
            await self._deliver(url, payload, headers or {})
        except DeliveryError as exc:
            log.warning('Webhook failed "%s": %s', url, exc)
            return False
        log.debug("Webhook sent successfully for job %s", payload.job_id)
        return True

    async def _deliver(self, url: str, payload: models.WebhookPayload, headers: Mapping[str, str]) -> None:
        body = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        request_headers = {"Content-Type": "application/json", **headers}
        problem = ""
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    resp = await client.post(url, json=body, headers=request_headers)
                    if resp.is_success:
                        return
                    problem = f"{resp.status_code} {resp.reason_phrase}"
                except httpx.RequestError as exc:
                    problem = f"{type(exc).__name__}: {exc}"
                    log.error('Webhook request to "%s" failed on attempt %d: %s', url, attempt, problem)
                except (httpx.InvalidURL, ValueError) as exc:
                    raise DeliveryError(f"Cannot build webhook request: {exc}") from exc
                if attempt < self.max_attempts:
                    await anyio.sleep(self.backoff_seconds * attempt)
        raise DeliveryError(f"{problem} after {self.max_attempts} attempt(s)")
