from __future__ import annotations

import asyncio
import io
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import httpx
import pytest
from PIL import Image

from ocrbridge import models
from ocrbridge.delivery import WebhookNotifier
from ocrbridge.scratch import ScratchSpace
from ocrbridge.service import JobOrchestrator

TSV_HEADER = "level\tpage_num\tblock_num\tpar_num\tline_num\tword_num\tleft\ttop\twidth\theight\tconf\ttext"

WordRow = Tuple[str, int, int, int, int]


def build_tsv(words: Sequence[WordRow], page: Tuple[int, int] = (1000, 1000), conf: str = "96") -> List[str]:
    lines = [TSV_HEADER, f"1\t1\t0\t0\t0\t0\t0\t0\t{page[0]}\t{page[1]}\t-1\t"]
    for idx, (text, left, top, width, height) in enumerate(words):
        lines.append(f"5\t1\t1\t1\t1\t{idx + 1}\t{left}\t{top}\t{width}\t{height}\t{conf}\t{text}")
    return lines


class FakeRecognizer:
    def __init__(self, lines: Optional[List[str]] = None, error: Optional[Exception] = None, hold: bool = False):
        self.lines = lines if lines is not None else build_tsv([("Hello", 100, 50, 80, 20)])
        self.error = error
        self.release = threading.Event()
        if not hold:
            self.release.set()
        self.calls: List[Path] = []
        self.file_existed: List[bool] = []

    async def recognize(self, path: Path) -> List[str]:
        self.calls.append(path)
        self.file_existed.append(path.exists())
        while not self.release.is_set():
            await asyncio.sleep(0.01)
        if self.error:
            raise self.error
        return list(self.lines)


class FakeCodeReader:
    def __init__(self, codes: Optional[List[models.Code]] = None, error: Optional[Exception] = None):
        self.codes = codes or []
        self.error = error
        self.calls: List[Path] = []

    async def detect(self, path: Path) -> List[models.Code]:
        self.calls.append(path)
        if self.error:
            raise self.error
        return list(self.codes)


class WebhookRecorder:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def png_bytes() -> bytes:
    img = Image.new("RGB", (60, 60), color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def tsv() -> Callable[..., List[str]]:
    return build_tsv


@pytest.fixture()
def recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture()
def code_reader() -> FakeCodeReader:
    return FakeCodeReader()


@pytest.fixture()
def webhook_recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture()
def scratch(tmp_path: Path) -> ScratchSpace:
    return ScratchSpace(str(tmp_path / "scratch"), fallbacks=[])


@pytest.fixture()
def orchestrator(recognizer, code_reader, webhook_recorder, scratch) -> JobOrchestrator:
    notifier = WebhookNotifier(transport=httpx.MockTransport(webhook_recorder))
    return JobOrchestrator(
        recognizer=recognizer,
        code_reader=code_reader,
        notifier=notifier,
        scratch=scratch,
    )
