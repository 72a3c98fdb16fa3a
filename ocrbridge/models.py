from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CodeType(str, Enum):
    QR_CODE = "QR_CODE"
    BAR_CODE = "BAR_CODE"
    OTHER = "OTHER"


class Word(CamelModel):
    id: str
    text: str
    left: float
    top: float
    width: float
    height: float
    baseline: float
    confidence: float = Field(ge=0, le=1)


class Code(CamelModel):
    id: str
    content: str
    type: CodeType
    left: float
    top: float
    width: float
    height: float


class OcrResult(CamelModel):
    words: List[Word] = Field(default_factory=list)
    codes: List[Code] = Field(default_factory=list)


# ---- Submission options ----
class PushOptions(CamelModel):
    strategy: Literal["push"] = "push"


class WebhookOptions(CamelModel):
    strategy: Literal["webhook"] = "webhook"
    webhook_target: AnyHttpUrl
    callback_headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("callback_headers")
    @classmethod
    def headers_are_ascii(cls, value: Dict[str, str]) -> Dict[str, str]:
        for name, header in value.items():
            if not (name.isascii() and header.isascii()):
                raise ValueError(f"Callback header {name!r} must be ASCII")
        return value


class PollOptions(CamelModel):
    strategy: Literal["poll"] = "poll"


SubmitOptions = Annotated[
    Union[PushOptions, WebhookOptions, PollOptions],
    Field(discriminator="strategy"),
]

submit_options_adapter: TypeAdapter[SubmitOptions] = TypeAdapter(SubmitOptions)


def parse_submit_options(raw: Any) -> SubmitOptions:
    """Validate a raw mapping into one of the strategy option types."""
    return submit_options_adapter.validate_python(raw)


# ---- Outward records ----
class JobStatus(CamelModel):
    job_id: str
    status: JobState
    result: Optional[OcrResult] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class JobCreated(CamelModel):
    job_id: str
    message: str = "OCR processing started"
    strategy: Literal["push", "webhook", "poll"]
    progress_url: Optional[str] = None
    status_url: Optional[str] = None
    webhook_target: Optional[str] = None


class ProgressEvent(CamelModel):
    type: Literal["progress", "complete", "error"]
    progress: Optional[float] = None
    message: Optional[str] = None
    result: Optional[OcrResult] = None
    error: Optional[str] = None


class WebhookPayload(CamelModel):
    job_id: str
    status: Literal["completed", "failed"]
    result: Optional[OcrResult] = None
    error: Optional[str] = None
    timestamp: datetime


class BufferSubmission(BaseModel):
    image: str
    options: Dict[str, Any]


def short_id() -> str:
    """Opaque 8-character id for words and codes."""
    return uuid4().hex[:8]
