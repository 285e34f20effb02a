# imagetransform/model.py
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ServiceKind(str, Enum):
    MAGIC_MORPH = "magic-morph"
    REMOVE_REPLACE = "remove-replace"
    STYLE_TRANSFER = "style-transfer"
    BACKGROUND_REPLACE = "background-replace"
    OBJECT_RECOLOR = "object-recolor"
    TEXT_TO_IMAGE = "text-to-image"
    AI_ENHANCE = "ai-enhance"
    VIP_MAGIC = "vip-magic"


class QualityTier(str, Enum):
    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NEEDS_VIP_SESSION = "needs_vip_session"
    BACKEND_FAILURE = "backend_failure"
    SUPERSEDED = "superseded"  # internal, never surfaced to callers


class TransformRequest(BaseModel):
    """
    One transformation job as submitted by the caller.

    Image and selection are opaque values; nothing here parses image bytes.
    Prompt and image presence are checked by the coordinator, not here, so
    that a rejected submit can be reported as ``InvalidInput``.
    """

    model_config = ConfigDict(frozen=True)

    original_image_ref: Optional[str] = None
    prompt: str = ""
    service: ServiceKind = ServiceKind.MAGIC_MORPH
    selection: Optional[str] = None
    quality: QualityTier = QualityTier.STANDARD
    vip: bool = False
    vip_session: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _vip_service_implies_vip(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("service") == ServiceKind.VIP_MAGIC.value:
            data = {**data, "vip": True}
        return data

    @property
    def has_vip_session(self) -> bool:
        return bool(self.vip_session and self.vip_session.strip())


class TransformProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    percent: float = Field(ge=0, le=100)
    message: str = ""


class TransformResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    transformed_image_ref: str


class TransformError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    kind: ErrorKind = ErrorKind.BACKEND_FAILURE


# Events pushed by a TransformBackend for one dispatched request

class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["progress"] = "progress"
    percent: float
    message: str = ""


class ResultEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["result"] = "result"
    transformed_image_ref: str


class ErrorEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str


TransformEvent = Union[ProgressEvent, ResultEvent, ErrorEvent]


# HTTP job service wire models

JobStatus = Literal["waiting", "processing", "done", "error"]


class TransformJobPayload(BaseModel):
    request_id: str
    original_image_url: str
    prompt: str
    service: ServiceKind
    selection_data: Optional[str] = None
    quality: QualityTier = QualityTier.STANDARD
    is_vip: bool = False
    vip_session: Optional[str] = None

    @classmethod
    def from_request(cls, request: TransformRequest, request_id: str) -> "TransformJobPayload":
        return cls(
            request_id=request_id,
            original_image_url=request.original_image_ref or "",
            prompt=request.prompt,
            service=request.service,
            selection_data=request.selection,
            quality=request.quality,
            is_vip=request.vip,
            vip_session=request.vip_session,
        )


class TransformJobResponse(BaseModel):
    job_id: str
    status: JobStatus


class TransformJobResult(BaseModel):
    job_id: str
    status: JobStatus
    progress: Optional[float] = None
    message: Optional[str] = None
    image_url: Optional[str] = None
    error_message: Optional[str] = None
