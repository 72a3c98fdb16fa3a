from __future__ import annotations

import base64
import binascii
import json
import logging
import platform
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from . import __version__, config, ingestion, models
from .errors import BusyError, InvalidInputError, NotFoundError
from .service import JobOrchestrator


# ---- App Setup ----
app = FastAPI(title="ocrbridge", version=__version__)
log = logging.getLogger("ocrbridge")
logging.basicConfig(
    level=config.get_settings().LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(message)s",
)
STARTED_AT = datetime.now(timezone.utc)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- DI Setup ----
def get_settings() -> config.Settings:
    return config.get_settings()


@lru_cache()
def get_orchestrator() -> JobOrchestrator:
    return JobOrchestrator.from_settings(get_settings())


def get_api_key(x_api_key: Optional[str] = Header(None)) -> Optional[str]:
    if get_settings().API_KEY and x_api_key != get_settings().API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API Key")
    return x_api_key


@app.on_event("shutdown")
async def drain_jobs() -> None:
    provider = app.dependency_overrides.get(get_orchestrator, get_orchestrator)
    await provider().join()


# ---- Helpers ----
def runtime_info() -> Dict[str, Any]:
    return {
        "version": __version__,
        "startTime": STARTED_AT.isoformat(),
        "pythonVersion": platform.python_version(),
        "platform": platform.system().lower(),
        "arch": platform.machine(),
    }


def parse_options(raw: Any) -> models.SubmitOptions:
    try:
        return models.parse_submit_options(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'options'}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidInputError(f"Invalid submission options. Strategy must be push, webhook or poll ({problems})")


def job_created(job_id: str, options: models.SubmitOptions) -> models.JobCreated:
    created = models.JobCreated(job_id=job_id, strategy=options.strategy)
    if isinstance(options, models.PushOptions):
        created.progress_url = f"/ocr/progress/{job_id}"
    elif isinstance(options, models.PollOptions):
        created.status_url = f"/ocr/status/{job_id}"
    else:
        created.webhook_target = str(options.webhook_target)
    return created


# ---- API Endpoints ----
@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/ocr/status")
async def service_status(orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return {
        "service": get_settings().APP_NAME,
        "version": __version__,
        "status": "ready",
        "processing": orchestrator.is_processing(),
        "runtime": runtime_info(),
    }


@app.get("/ocr/version")
async def version() -> Dict[str, Any]:
    return runtime_info()


@app.get("/ocr/debug")
async def debug_info(
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Depends(get_api_key),
) -> Dict[str, Any]:
    return orchestrator.debug_info()


@app.post(
    "/ocr/process",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=models.JobCreated,
    response_model_exclude_none=True,
)
async def process_image(
    image: Optional[UploadFile] = File(default=None),
    body: Optional[str] = Form(default=None),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Depends(get_api_key),
) -> models.JobCreated:
    if image is None:
        raise InvalidInputError("No image file provided")
    ingestion.validate_content_type(image.content_type)
    if orchestrator.is_processing():
        raise BusyError("OCR service is busy processing another request")

    try:
        raw_options = json.loads(body or "{}")
    except json.JSONDecodeError as exc:
        raise InvalidInputError(f"Options body is not valid JSON: {exc.msg}")
    options = parse_options(raw_options)

    content = await image.read()
    job_id = await orchestrator.submit(content, options)
    return job_created(job_id, options)


@app.post(
    "/ocr/process-buffer",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=models.JobCreated,
    response_model_exclude_none=True,
)
async def process_buffer(
    payload: models.BufferSubmission,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Depends(get_api_key),
) -> models.JobCreated:
    log.info("Received image buffer for OCR, decoding")
    try:
        content = base64.b64decode(payload.image, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("Image must be base64 encoded")
    options = parse_options(payload.options)
    job_id = await orchestrator.submit(content, options)
    return job_created(job_id, options)


@app.get("/ocr/progress/{job_id}")
async def progress(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Depends(get_api_key),
) -> StreamingResponse:
    log.debug("SSE request for job %s", job_id)
    channel = orchestrator.get_progress_channel(job_id)

    async def stream():
        async for event in channel.events():
            yield f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"

    return StreamingResponse(stream(), media_type="text/event-stream")


@app.get(
    "/ocr/status/{job_id}",
    response_model=models.JobStatus,
    response_model_exclude_none=True,
)
async def job_status(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Depends(get_api_key),
) -> models.JobStatus:
    log.debug("Status request for job %s", job_id)
    return orchestrator.get_status(job_id).to_status()


# ---- Error Mapping ----
@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(BusyError)
async def busy_handler(request: Request, exc: BusyError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("Unhandled error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
