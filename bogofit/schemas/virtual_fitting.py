"""
Virtual fitting schemas: slot inputs, progress, run results and the
classified outcomes of the upstream workflow calls.
"""
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SlotName(str, Enum):
    HUMAN = "human"
    GARMENT = "garment"
    LOWER = "lower"
    BACKGROUND = "background"

    @property
    def field_name(self) -> str:
        """Multipart field name used by the upstream workflow."""
        return f"{self.value}_file"


REQUIRED_SLOTS = (SlotName.HUMAN, SlotName.GARMENT)


class UploadedImage(BaseModel):
    """An image selected for a slot, owned by that slot once set."""
    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str = "image/jpeg"
    data: bytes = Field(..., repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


class ProgressPhase(str, Enum):
    IDLE = "idle"
    IMAGE = "image"
    VIDEO = "video"


class ProgressState(BaseModel):
    percent: int = Field(0, ge=0, le=100)
    phase: ProgressPhase = ProgressPhase.IDLE
    status_message: str = ""


class FittingState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_IMAGE = "awaiting_image"
    IMAGE_READY = "image_ready"
    AWAITING_VIDEO = "awaiting_video"
    VIDEO_READY = "video_ready"


class StatusTone(str, Enum):
    """Banner colour of the current status: red, green or blue."""
    NONE = "none"
    ERROR = "error"
    SUCCESS = "success"
    INFO = "info"


class GenerationResult(BaseModel):
    """Outcome of one fitting run. A new run always starts from a fresh one."""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.image_url is not None


# Workflow outcomes. Each carries the user-facing message for its case.

class ImageSuccess(BaseModel):
    kind: Literal["success"] = "success"
    image_url: str
    recovered: bool = False

    @property
    def message(self) -> str:
        return "Image generation complete!"


class MissingFilesError(BaseModel):
    kind: Literal["missing_files"] = "missing_files"
    missing: list[SlotName] = []

    @property
    def message(self) -> str:
        return "Please upload all required files (person and top images)."


class BackgroundError(BaseModel):
    kind: Literal["background_error"] = "background_error"

    @property
    def message(self) -> str:
        return (
            "A server error occurred while processing the background image. "
            "Please try again without a background image."
        )


class ServerError(BaseModel):
    kind: Literal["server_error"] = "server_error"

    @property
    def message(self) -> str:
        return "An internal server error occurred. Please check the image quality and try again."


class MinimumBodyError(BaseModel):
    kind: Literal["minimum_body"] = "minimum_body"

    @property
    def message(self) -> str:
        return "The person image must include at least the upper body."


class HtmlError(BaseModel):
    kind: Literal["html_error"] = "html_error"

    @property
    def message(self) -> str:
        return "The server returned an HTML response. Please contact the administrator."


class GenericParseError(BaseModel):
    kind: Literal["parse_error"] = "parse_error"
    status: int
    snippet: str

    @property
    def message(self) -> str:
        return f"Failed to parse server response ({self.status}): {self.snippet}..."


class UpstreamError(BaseModel):
    kind: Literal["upstream_error"] = "upstream_error"
    detail: str

    @property
    def message(self) -> str:
        return f"Image generation failed: {self.detail}"


class TimeoutFailure(BaseModel):
    kind: Literal["timeout"] = "timeout"

    @property
    def message(self) -> str:
        return "The request timed out. Please try again."


class NetworkFailure(BaseModel):
    kind: Literal["network_error"] = "network_error"
    cause: str

    @property
    def message(self) -> str:
        return f"Network error: {self.cause}"


WorkflowOutcome = Annotated[
    Union[
        ImageSuccess,
        MissingFilesError,
        BackgroundError,
        ServerError,
        MinimumBodyError,
        HtmlError,
        GenericParseError,
        UpstreamError,
        TimeoutFailure,
        NetworkFailure,
    ],
    Field(discriminator="kind"),
]


class VideoSuccess(BaseModel):
    kind: Literal["success"] = "success"
    video_url: str

    @property
    def message(self) -> str:
        return "Video generation complete!"


class VideoFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    reason: str

    @property
    def message(self) -> str:
        return self.reason


VideoOutcome = Annotated[Union[VideoSuccess, VideoFailure], Field(discriminator="kind")]


# API schemas

class SampleImageSchema(BaseModel):
    id: str
    src: str
    alt: str
    category: Optional[str] = None


class SampleCatalogSchema(BaseModel):
    human: list[SampleImageSchema]
    garment: list[SampleImageSchema]
    lower: list[SampleImageSchema]
    background: list[SampleImageSchema]


class SlotErrorSchema(BaseModel):
    slot: SlotName
    error: str


class FittingRunResponseSchema(BaseModel):
    """Response of a server-side fitting run."""
    state: FittingState
    status: str = Field(..., description="Final status message")
    tone: StatusTone
    progress: ProgressState
    result: GenerationResult
    slot_errors: list[SlotErrorSchema] = []

    class Config:
        json_schema_extra = {
            "example": {
                "state": "image_ready",
                "status": "Image generation complete!",
                "tone": "success",
                "progress": {"percent": 100, "phase": "image", "status_message": "Image generation complete!"},
                "result": {
                    "image_url": "https://cdn.klingai.com/bs2/upload-kling-api/result.png",
                    "video_url": None,
                    "error_message": None,
                },
                "slot_errors": [],
            }
        }


class AIFittingResponseSchema(BaseModel):
    success: bool = True
    image_url: str = Field(..., description="data: URL of the generated image")
    has_item: bool = False
    message: str = "Virtual fitting completed successfully"


class VideoGenerationRequestSchema(BaseModel):
    image_url: str = Field(..., min_length=1, description="Image URL or data: URL to animate")
    prompt: Optional[str] = None
    product_title: Optional[str] = None


class VideoTaskSchema(BaseModel):
    task_id: str
    status: str = Field(..., description="Current status: pending, processing, completed, or failed")
    video_url: Optional[str] = None
    original_url: Optional[str] = None
    error: Optional[str] = None


class GarmentAnalysisRequestSchema(BaseModel):
    image: str = Field(..., description="Base64 image data or a data: URL")
    product_name: Optional[str] = None


class GarmentAnalysisResponseSchema(BaseModel):
    success: bool = True
    category: str = Field(..., description="상의 (top) or 하의 (bottom)")
    slot: Optional[SlotName] = Field(None, description="Slot a product of this category fills")
