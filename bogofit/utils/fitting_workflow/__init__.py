import asyncio
import json
import logging
import re
import time
from typing import Optional

import aiohttp
from pydantic import BaseModel

from bogofit.core.config import settings
from bogofit.schemas.virtual_fitting import (
    REQUIRED_SLOTS,
    BackgroundError,
    GenericParseError,
    HtmlError,
    ImageSuccess,
    MinimumBodyError,
    MissingFilesError,
    NetworkFailure,
    ProgressPhase,
    ServerError,
    SlotName,
    TimeoutFailure,
    UploadedImage,
    UpstreamError,
    VideoFailure,
    VideoOutcome,
    VideoSuccess,
    WorkflowOutcome,
)
from bogofit.services.progress import ProgressSimulator

logger = logging.getLogger(__name__)

SERVER_FAULT_STATUS = 500
SERVER_FAULT_BODY = "Internal Server Error"
# The upstream sometimes truncates its fault page
SERVER_FAULT_MARKERS = ("Internal Server Error", "Internal S")
HTML_MARKERS = ("<!DOCTYPE html>", "<html")
SNIPPET_LENGTH = 100


class WorkflowRequest(BaseModel):
    """Payload of one image generation call."""
    human: Optional[UploadedImage] = None
    garment: Optional[UploadedImage] = None
    lower: Optional[UploadedImage] = None
    background: Optional[UploadedImage] = None
    connection_info: str
    pro_mode: bool = False

    def file_for(self, name: SlotName) -> Optional[UploadedImage]:
        return getattr(self, name.value)

    def missing_slots(self) -> list[SlotName]:
        return [name for name in REQUIRED_SLOTS if self.file_for(name) is None]

    @property
    def has_background(self) -> bool:
        return self.background is not None

    def build_form(self) -> aiohttp.FormData:
        form = aiohttp.FormData()
        for name in SlotName:
            image = self.file_for(name)
            if image is None:
                continue
            form.add_field(
                name.field_name,
                image.data,
                filename=image.filename,
                content_type=image.content_type,
            )
        form.add_field("connection_info", self.connection_info)
        form.add_field("is_pro", "true" if self.pro_mode else "false")
        return form


def make_connection_info(client_id: str = settings.FITTING_CLIENT_ID, now: Optional[float] = None) -> str:
    """Correlation token sent with both upstream calls of a run."""
    timestamp_ms = int((time.time() if now is None else now) * 1000)
    return f"{client_id}_{timestamp_ms}"


def _is_success_status(status: int) -> bool:
    return 200 <= status < 300


def _has_fault_marker(status: int, text: str) -> bool:
    return status == SERVER_FAULT_STATUS and any(marker in text for marker in SERVER_FAULT_MARKERS)


def classify_workflow_response(
    status: int,
    text: str,
    has_background: bool,
    cdn_pattern: str = settings.CDN_IMAGE_URL_PATTERN,
) -> WorkflowOutcome:
    """
    Interpret the raw response of the image generation call.

    Checks run in a fixed priority order: the bare server-fault page, a JSON
    body, an image URL recovered from a malformed body, then heuristics over
    the raw text.
    """
    if status == SERVER_FAULT_STATUS and text.strip() == SERVER_FAULT_BODY:
        return BackgroundError() if has_background else ServerError()

    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
        parsed = False
    else:
        parsed = True

    if parsed:
        image_url = payload.get("image_url") if isinstance(payload, dict) else None
        if _is_success_status(status) and isinstance(image_url, str) and image_url:
            return ImageSuccess(image_url=image_url)
        if has_background:
            return BackgroundError()
        if _has_fault_marker(status, text):
            return MinimumBodyError()
        error = payload.get("error") if isinstance(payload, dict) else None
        return UpstreamError(detail=str(error) if error else f"HTTP {status}")

    match = re.search(cdn_pattern, text) if cdn_pattern else None
    if match:
        logger.info(f"[classify_workflow_response] Recovered image URL from malformed body: {match.group(0)}")
        return ImageSuccess(image_url=match.group(0), recovered=True)

    if any(marker in text for marker in HTML_MARKERS):
        return HtmlError()
    if _has_fault_marker(status, text):
        return MinimumBodyError()
    return GenericParseError(status=status, snippet=text[:SNIPPET_LENGTH])


def classify_video_response(status: int, text: str) -> VideoOutcome:
    """Interpret the raw response of the image-to-video call."""
    try:
        payload = json.loads(text)
    except ValueError:
        return VideoFailure(reason=f"Video generation server error: {text[:SNIPPET_LENGTH]}...")

    if isinstance(payload, dict):
        video_url = payload.get("video_url")
        if _is_success_status(status) and isinstance(video_url, str) and video_url:
            return VideoSuccess(video_url=video_url)
        error = payload.get("error")
    else:
        error = None
    return VideoFailure(reason=f"Video generation failed: {error or 'unknown error'}")


async def _post_form(url: str, form: aiohttp.FormData, timeout: float) -> tuple[int, str]:
    """POST a multipart form and return (status, full body text)."""
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.post(url, data=form) as resp:
            # Always read text first: the upstream may answer with non-JSON pages
            text = await resp.text(errors="replace")
            return resp.status, text


class WorkflowInvoker:
    """Issues the image generation call of a fitting run."""

    def __init__(
        self,
        progress: Optional[ProgressSimulator] = None,
        base_url: str = settings.WORKFLOW_BASE_URL,
        run_path: str = settings.WORKFLOW_RUN_PATH,
        timeout: float = settings.WORKFLOW_TIMEOUT_SECONDS,
        background_timeout: float = settings.WORKFLOW_BACKGROUND_TIMEOUT_SECONDS,
        cdn_pattern: str = settings.CDN_IMAGE_URL_PATTERN,
    ):
        self.progress = progress or ProgressSimulator()
        self.url = base_url.rstrip("/") + run_path
        self.timeout = timeout
        self.background_timeout = background_timeout
        self.cdn_pattern = cdn_pattern

    def timeout_for(self, request: WorkflowRequest) -> float:
        # Background compositing takes markedly longer upstream
        return self.background_timeout if request.has_background else self.timeout

    async def invoke(self, request: WorkflowRequest) -> WorkflowOutcome:
        missing = request.missing_slots()
        if missing:
            logger.info(f"[WorkflowInvoker.invoke] Missing required files: {[m.value for m in missing]}")
            return MissingFilesError(missing=missing)

        timeout = self.timeout_for(request)
        logger.info(
            f"[WorkflowInvoker.invoke] Sending workflow request {request.connection_info} "
            f"(background={request.has_background}, pro={request.pro_mode}, timeout={timeout}s)"
        )
        ramp = self.progress.ramp(
            settings.IMAGE_RAMP_START,
            settings.IMAGE_RAMP_TARGET,
            settings.IMAGE_RAMP_DURATION_MS,
            phase=ProgressPhase.IMAGE,
        )
        try:
            status, text = await _post_form(self.url, request.build_form(), timeout)
            logger.debug(f"[WorkflowInvoker.invoke] Response {status}: {text[:500]}")
            outcome = classify_workflow_response(status, text, request.has_background, self.cdn_pattern)
        except asyncio.TimeoutError:
            logger.warning(f"[WorkflowInvoker.invoke] Timed out after {timeout}s")
            outcome = TimeoutFailure()
        except Exception as e:
            logger.error(f"[WorkflowInvoker.invoke] Request failed: {e}")
            outcome = NetworkFailure(cause=str(e))
        finally:
            self.progress.cancel(ramp)

        logger.info(f"[WorkflowInvoker.invoke] Outcome: {outcome.kind}")
        return outcome


class VideoInvoker:
    """Issues the chained image-to-video call in pro mode."""

    def __init__(
        self,
        progress: Optional[ProgressSimulator] = None,
        base_url: str = settings.WORKFLOW_BASE_URL,
        video_path: str = settings.WORKFLOW_VIDEO_PATH,
        timeout: float = settings.VIDEO_TIMEOUT_SECONDS,
    ):
        self.progress = progress or ProgressSimulator()
        self.url = base_url.rstrip("/") + video_path
        self.timeout = timeout

    async def invoke(self, image_url: str, connection_info: str) -> VideoOutcome:
        form = aiohttp.FormData()
        form.add_field("image_url", image_url)
        form.add_field("connection_info", connection_info)

        ramp = self.progress.ramp(
            settings.VIDEO_RAMP_START,
            settings.VIDEO_RAMP_TARGET,
            settings.VIDEO_RAMP_DURATION_MS,
            phase=ProgressPhase.VIDEO,
        )
        try:
            status, text = await _post_form(self.url, form, self.timeout)
            outcome = classify_video_response(status, text)
        except asyncio.TimeoutError:
            logger.warning(f"[VideoInvoker.invoke] Timed out after {self.timeout}s")
            outcome = VideoFailure(reason="Video generation failed: the request timed out")
        except Exception as e:
            logger.error(f"[VideoInvoker.invoke] Request failed: {e}")
            outcome = VideoFailure(reason=f"Video generation failed: network error: {e}")
        finally:
            self.progress.cancel(ramp)

        logger.info(f"[VideoInvoker.invoke] Outcome: {outcome.kind}")
        return outcome
